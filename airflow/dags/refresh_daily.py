from __future__ import annotations

import os
from datetime import datetime, timedelta
from textwrap import dedent

from airflow import DAG
from airflow.providers.docker.operators.docker import DockerOperator
from docker.types import Mount

DEFAULT_ARGS = {
    "owner": "data-platform",
    "depends_on_past": False,
    "email_on_failure": False,
    "email_on_retry": False,
    "retries": 2,
    "retry_delay": timedelta(minutes=15),
}

COMPOSE_PROJECT = os.environ.get("COMPOSE_PROJECT_NAME", "case-signals")
DOCKER_NETWORK = f"{COMPOSE_PROJECT}_default"
API_IMAGE = os.environ.get("API_IMAGE", "case-signals-api:latest")
DATA_MOUNT = Mount(target="/app/data", source="case_signals_data", type="volume")

ENV_KEYS = [
    "CASE_SIGNALS_HISTORICAL_URL",
    "CASE_SIGNALS_FEED_URL",
    "CASE_SIGNALS_POPULATION_URL",
    "CASE_SIGNALS_USER_AGENT",
    "CASE_SIGNALS_TIMEOUT",
    "CASE_SIGNALS_INCREASE_POLICY",
    "CASE_SIGNALS_DB_PATH",
]

ENVIRONMENT = {key: value for key in ENV_KEYS if (value := os.environ.get(key))}

QUALITY_CHECK_SCRIPT = dedent(
    """
from storage.db import connect, fetch_data_points

conn = connect(read_only=True)
points = fetch_data_points(conn)
conn.close()

assert points, "No data points loaded"
dates = [point.date for point in points]
assert dates == sorted(set(dates)), "Dates are not strictly ascending"
for group in ("cases", "deaths", "recoveries", "hospitalisations"):
    totals = [getattr(point, group).total for point in points]
    assert all(total >= 0 for total in totals), f"Negative {group} total"
assert all(point.incidence >= 0 for point in points), "Negative incidence"
print({"count": len(points), "latest": dates[-1].isoformat()})
    """
).strip()

with DAG(
    dag_id="refresh_case_data_daily",
    description="Re-read all case-data sources, reconcile and refresh the cache",
    schedule="30 7 * * *",
    start_date=datetime(2023, 1, 1),
    catchup=False,
    default_args=DEFAULT_ARGS,
    max_active_runs=1,
    tags=["case-data", "etl"],
) as dag:

    refresh_cache = DockerOperator(
        task_id="refresh_cache",
        image=API_IMAGE,
        command=["python", "-m", "jobs", "cache", "refresh"],
        docker_url="unix://var/run/docker.sock",
        auto_remove=True,
        network_mode=DOCKER_NETWORK,
        environment=ENVIRONMENT,
        mounts=[DATA_MOUNT],
        mount_tmp_dir=False,
        do_xcom_push=False,
    )

    data_quality_checks = DockerOperator(
        task_id="data_quality_checks",
        image=API_IMAGE,
        command=["python", "-c", QUALITY_CHECK_SCRIPT],
        docker_url="unix://var/run/docker.sock",
        auto_remove=True,
        network_mode=DOCKER_NETWORK,
        environment=ENVIRONMENT,
        mounts=[DATA_MOUNT],
        mount_tmp_dir=False,
        do_xcom_push=False,
    )

    refresh_cache >> data_quality_checks
