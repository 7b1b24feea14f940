pytest_plugins = [
    "tests.fixtures.mocked_aws",
    "tests.fixtures.settings",
    "tests.fixtures.cognito_tokens",
    "tests.fixtures.app_client",
]
