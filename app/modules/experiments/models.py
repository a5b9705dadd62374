# BigQuery tables: <project>.<dataset>.<table> holding device submissions
# This file documents the expected warehouse schema
# Column names are configurable in app.config.settings

"""
Expected BigQuery table structure (one row per device submission):
- ExperimentData_Exp_name: STRING - experiment the row belongs to
- ExperimentData_MAC_address: STRING - submitting device
- TimeStamp: TIMESTAMP - event time
- SensorData_*: FLOAT64/INT64/STRING (nullable) - one column per physical sensor
- any other columns are ignored by metadata resolution
"""

from typing import Iterable, List

from app.config import settings


def sensor_columns(columns: Iterable[str]) -> List[str]:
    """Keep only the columns in the sensor namespace, in schema order"""
    prefix = settings.sensor_column_prefix
    return [c for c in columns if c.startswith(prefix)]
