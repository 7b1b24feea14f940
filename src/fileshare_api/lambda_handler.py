"""Lambda handler for the Fileshare API using Mangum."""
from mangum import Mangum

from fileshare_api.main import create_app
from fileshare_api.settings import get_settings

# Built once per cold start; warm invocations reuse the app and its connection pool
app = create_app(get_settings())

handler = Mangum(app, lifespan="off")

lambda_handler = handler
