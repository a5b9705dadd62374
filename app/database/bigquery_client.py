from google.cloud import bigquery
from app.config import settings
from app.core.gcp_credentials import get_gcp_credentials


class BigQueryClient:
    _client: bigquery.Client = None

    @classmethod
    def get_client(cls) -> bigquery.Client:
        if cls._client is None:
            kwargs = {"project": settings.gcp_project_id}
            creds = get_gcp_credentials()
            if creds:
                kwargs["credentials"] = creds
            if settings.bigquery_location:
                kwargs["location"] = settings.bigquery_location
            cls._client = bigquery.Client(**kwargs)
        return cls._client

    @classmethod
    def reset_client(cls):
        if cls._client is not None:
            cls._client.close()
        cls._client = None


def get_bigquery() -> bigquery.Client:
    return BigQueryClient.get_client()
