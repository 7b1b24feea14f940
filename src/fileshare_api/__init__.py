"""Federated-login file sharing backend: uploads to S3, metadata in PostgreSQL, Cognito auth."""
