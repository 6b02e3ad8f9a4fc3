"""CSV export of a day's metric buckets."""

from __future__ import annotations

import csv
import logging
import os
from dataclasses import fields
from datetime import date
from pathlib import Path
from typing import Sequence

import boto3

from funnelwire.logic.models import ExportRecord
from funnelwire.utils.dates import format_date

logger = logging.getLogger(__name__)

CSV_COLUMNS = [item.name for item in fields(ExportRecord)]


class CsvExporter:
    def __init__(self, output_dir: str | Path = "artifacts/csv", *, upload: bool | None = None) -> None:
        self.output_dir = Path(output_dir)
        self.upload = bool(os.environ.get("AWS_S3_BUCKET")) if upload is None else upload

    async def export(self, records: Sequence[ExportRecord], day: date) -> None:
        path = write_csv(records, day, self.output_dir)
        if self.upload:
            _upload_to_s3(path)


def write_csv(records: Sequence[ExportRecord], day: date, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    file_path = output_dir / f"metrics-{format_date(day)}.csv"
    with file_path.open("w", newline="") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(record.to_dict() for record in records)
    logger.info("Wrote %s rows to %s", len(records), file_path)
    return file_path


def _upload_to_s3(path: Path) -> None:
    bucket = os.environ.get("AWS_S3_BUCKET")
    if not bucket:
        return
    endpoint = os.environ.get("AWS_S3_ENDPOINT")
    session = boto3.session.Session()
    client = session.client(
        "s3",
        endpoint_url=endpoint,
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
    )
    client.upload_file(str(path), bucket, path.name)
