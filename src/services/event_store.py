"""
Keyed storage for earthquake event records plus the upsert protocol on top of it.

Backends expose get / create-if-absent / update / scan keyed on the event id.
The SQLite backend is the default; the DynamoDB backend targets the hosted
table used in production.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from src.services.errors import StoreError
from src.services.quake_events import EventRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("datasets/quakes/events.sqlite")
DEFAULT_TABLE_NAME = "ai-earthquake-tracker"
DEFAULT_REGION = "us-east-1"


class CreateStatus(str, Enum):
    CREATED = "created"
    ALREADY_EXISTED = "already_existed"
    FAILED = "failed"


@dataclass
class CreateResult:
    status: CreateStatus
    error: Optional[BaseException] = None


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


class BaseEventStore:
    """Interface for keyed event storage."""

    name: str

    def ensure_ready(self) -> None:
        raise NotImplementedError

    def get(self, event_id: str) -> EventRecord | None:
        raise NotImplementedError

    def create_if_absent(self, record: EventRecord) -> CreateResult:
        raise NotImplementedError

    def update(self, record: EventRecord) -> None:
        raise NotImplementedError

    def scan(self) -> list[EventRecord]:
        raise NotImplementedError

    def close(self) -> None:
        return None


class SQLiteEventStore(BaseEventStore):
    """Single-file store keyed on the event fingerprint."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH) -> None:
        self.name = "sqlite"
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Unable to open SQLite store at {self.db_path}: {exc}") from exc
        self.conn.row_factory = sqlite3.Row
        self.lock = threading.Lock()

    def ensure_ready(self) -> None:
        try:
            with self.lock, self.conn:
                self.conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS events (
                        id TEXT PRIMARY KEY,
                        last_updated TEXT NOT NULL,
                        injured INTEGER NOT NULL DEFAULT 0,
                        deaths INTEGER NOT NULL DEFAULT 0,
                        magnitude REAL NOT NULL,
                        location TEXT NOT NULL,
                        date TEXT NOT NULL,
                        ref_url TEXT NOT NULL
                    )
                    """
                )
                self.conn.execute("CREATE INDEX IF NOT EXISTS idx_events_date ON events(date)")
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to initialise SQLite store at {self.db_path}: {exc}") from exc

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> EventRecord:
        return EventRecord(
            id=row["id"],
            last_updated=row["last_updated"],
            injured=row["injured"],
            deaths=row["deaths"],
            magnitude=row["magnitude"],
            location=row["location"],
            date=row["date"],
            ref_url=row["ref_url"],
        )

    def get(self, event_id: str) -> EventRecord | None:
        try:
            with self.lock:
                row = self.conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read event {event_id}: {exc}") from exc
        return self._row_to_record(row) if row else None

    def create_if_absent(self, record: EventRecord) -> CreateResult:
        try:
            with self.lock, self.conn:
                cursor = self.conn.execute(
                    """
                    INSERT INTO events (
                        id, last_updated, injured, deaths, magnitude, location, date, ref_url
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO NOTHING
                    """,
                    (
                        record.id,
                        record.last_updated,
                        record.injured,
                        record.deaths,
                        record.magnitude,
                        record.location,
                        record.date,
                        record.ref_url,
                    ),
                )
        except sqlite3.Error as exc:
            return CreateResult(CreateStatus.FAILED, exc)
        if cursor.rowcount == 0:
            return CreateResult(CreateStatus.ALREADY_EXISTED)
        return CreateResult(CreateStatus.CREATED)

    def update(self, record: EventRecord) -> None:
        try:
            with self.lock, self.conn:
                cursor = self.conn.execute(
                    """
                    UPDATE events
                    SET last_updated = ?, injured = ?, deaths = ?, magnitude = ?,
                        location = ?, date = ?, ref_url = ?
                    WHERE id = ?
                    """,
                    (
                        record.last_updated,
                        record.injured,
                        record.deaths,
                        record.magnitude,
                        record.location,
                        record.date,
                        record.ref_url,
                        record.id,
                    ),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to update event {record.id}: {exc}") from exc
        if cursor.rowcount == 0:
            raise StoreError(f"Event {record.id} vanished before update")

    def scan(self) -> list[EventRecord]:
        try:
            with self.lock:
                rows = self.conn.execute("SELECT * FROM events ORDER BY date DESC, id").fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to scan events: {exc}") from exc
        return [self._row_to_record(row) for row in rows]

    def close(self) -> None:
        self.conn.close()


class DynamoEventStore(BaseEventStore):
    """DynamoDB table keyed on ``id`` (string hash key)."""

    # `location` and `date` are DynamoDB reserved words.
    attribute_names = {"#loc": "location", "#date": "date"}

    def __init__(
        self,
        table_name: str = DEFAULT_TABLE_NAME,
        region: str | None = DEFAULT_REGION,
        client: Any = None,
        timeout: float = 10.0,
    ) -> None:
        self.name = "dynamodb"
        self.table_name = table_name
        if client is None:
            cfg = BotoConfig(
                retries={"max_attempts": 3, "mode": "standard"},
                connect_timeout=timeout,
                read_timeout=timeout,
            )
            session_args = {}
            if region:
                session_args["region_name"] = region
            try:
                client = boto3.client("dynamodb", config=cfg, **session_args)
            except BotoCoreError as exc:
                raise StoreError(f"Unable to build DynamoDB client: {exc}") from exc
        self.client = client

    @staticmethod
    def _to_item(record: EventRecord) -> dict[str, dict[str, str]]:
        return {
            "id": {"S": record.id},
            "lastUpdated": {"S": record.last_updated},
            "injured": {"N": str(record.injured)},
            "deaths": {"N": str(record.deaths)},
            "magnitude": {"N": repr(float(record.magnitude))},
            "location": {"S": record.location},
            "date": {"S": record.date},
            "refUrl": {"S": record.ref_url},
        }

    @staticmethod
    def _from_item(item: dict[str, dict[str, str]]) -> EventRecord:
        def text(key: str) -> str:
            return item.get(key, {}).get("S", "")

        def number(key: str) -> str:
            return item.get(key, {}).get("N", "0")

        return EventRecord(
            id=text("id"),
            last_updated=text("lastUpdated"),
            injured=int(number("injured")),
            deaths=int(number("deaths")),
            magnitude=float(number("magnitude")),
            location=text("location"),
            date=text("date"),
            ref_url=text("refUrl"),
        )

    def ensure_ready(self) -> None:
        try:
            self.client.describe_table(TableName=self.table_name)
            LOGGER.info("DynamoDB table %s already exists", self.table_name)
            return
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") != "ResourceNotFoundException":
                raise StoreError(f"Failed to describe table {self.table_name}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"Failed to describe table {self.table_name}: {exc}") from exc
        LOGGER.info("Creating DynamoDB table %s", self.table_name)
        try:
            self.client.create_table(
                TableName=self.table_name,
                KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
                ProvisionedThroughput={"ReadCapacityUnits": 5, "WriteCapacityUnits": 5},
            )
            waiter = self.client.get_waiter("table_exists")
            waiter.wait(TableName=self.table_name, WaiterConfig={"Delay": 5, "MaxAttempts": 60})
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"Failed to create table {self.table_name}: {exc}") from exc
        LOGGER.info("DynamoDB table %s created", self.table_name)

    def get(self, event_id: str) -> EventRecord | None:
        try:
            response = self.client.get_item(
                TableName=self.table_name,
                Key={"id": {"S": event_id}},
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"Failed to read event {event_id}: {exc}") from exc
        item = response.get("Item")
        return self._from_item(item) if item else None

    def create_if_absent(self, record: EventRecord) -> CreateResult:
        try:
            self.client.put_item(
                TableName=self.table_name,
                Item=self._to_item(record),
                ConditionExpression="attribute_not_exists(id)",
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return CreateResult(CreateStatus.ALREADY_EXISTED)
            return CreateResult(CreateStatus.FAILED, exc)
        except BotoCoreError as exc:
            return CreateResult(CreateStatus.FAILED, exc)
        return CreateResult(CreateStatus.CREATED)

    def update(self, record: EventRecord) -> None:
        item = self._to_item(record)
        try:
            self.client.update_item(
                TableName=self.table_name,
                Key={"id": item["id"]},
                UpdateExpression=(
                    "SET lastUpdated = :lastUpdated, injured = :injured, deaths = :deaths, "
                    "magnitude = :magnitude, #loc = :location, #date = :date, refUrl = :refUrl"
                ),
                ExpressionAttributeNames=self.attribute_names,
                ExpressionAttributeValues={
                    ":lastUpdated": item["lastUpdated"],
                    ":injured": item["injured"],
                    ":deaths": item["deaths"],
                    ":magnitude": item["magnitude"],
                    ":location": item["location"],
                    ":date": item["date"],
                    ":refUrl": item["refUrl"],
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"Failed to update event {record.id}: {exc}") from exc

    def scan(self) -> list[EventRecord]:
        records: list[EventRecord] = []
        try:
            paginator = self.client.get_paginator("scan")
            for page in paginator.paginate(TableName=self.table_name):
                records.extend(self._from_item(item) for item in page.get("Items", []))
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"Failed to scan table {self.table_name}: {exc}") from exc
        records.sort(key=lambda record: (record.date, record.id), reverse=True)
        return records


def open_store(
    backend: str = "sqlite",
    db_path: Path = DEFAULT_DB_PATH,
    table_name: str = DEFAULT_TABLE_NAME,
    region: str | None = DEFAULT_REGION,
    timeout: float = 10.0,
) -> BaseEventStore:
    if backend == "sqlite":
        return SQLiteEventStore(db_path)
    if backend == "dynamodb":
        return DynamoEventStore(table_name=table_name, region=region, timeout=timeout)
    raise ValueError(f"Unknown store backend {backend!r}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        # Naive values are written in UTC.
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def upsert_event(
    store: BaseEventStore,
    record: EventRecord,
    now: Callable[[], datetime] | None = None,
) -> UpsertOutcome:
    """Insert ``record`` or merge it over the stored copy with the same id.

    Creation is guarded by the store's create-if-absent condition, so when two
    writers race on a new id only one create succeeds and the other falls
    through to the full-field update. ``last_updated`` is always set here and
    never moves backwards for an id.
    """
    if not record.id:
        raise ValueError("record has no id; fingerprint it before upserting")
    current = (now or _utcnow)()
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    timestamp = current.isoformat()
    existing = store.get(record.id)
    if existing is None:
        result = store.create_if_absent(replace(record, last_updated=timestamp))
        if result.status is CreateStatus.CREATED:
            LOGGER.info("Created event %s from %s", record.id, record.ref_url)
            return UpsertOutcome.CREATED
        if result.status is CreateStatus.FAILED:
            raise StoreError(f"Failed to create event {record.id}: {result.error}") from result.error
        LOGGER.info("Event %s was created concurrently; updating instead", record.id)
    else:
        stored = _parse_timestamp(existing.last_updated)
        if stored is not None and stored > current:
            timestamp = existing.last_updated
    store.update(replace(record, last_updated=timestamp))
    LOGGER.info("Updated event %s from %s", record.id, record.ref_url)
    return UpsertOutcome.UPDATED
