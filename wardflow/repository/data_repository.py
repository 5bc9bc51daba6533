"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, List, Optional

from wardflow.domain.models import (
    AlertLevel,
    BedRequest,
    CleaningJob,
    CleaningJobStatus,
    DailyRecord,
    OccupancyAlert,
    OccupancySnapshot,
    RequestStatus,
    TransferRecord,
    TransferRequestStatus,
    Unit,
    UnitStatus,
    Ward,
    WardStats,
    WardTransferRequest,
)
from wardflow.utils.config import Settings, get_settings
from wardflow.utils.logger import get_logger


logger = get_logger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class DataRepository:
    """Encapsulates SQLite access so the core stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Wards (
                        ward_id TEXT PRIMARY KEY,
                        capacity INTEGER NOT NULL CHECK (capacity > 0)
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Units (
                        unit_id TEXT PRIMARY KEY,
                        ward_id TEXT NOT NULL,
                        status TEXT NOT NULL,
                        status_changed_at TEXT NOT NULL,
                        equipment_tag TEXT,
                        occupant_ref TEXT,
                        expected_departure TEXT,
                        FOREIGN KEY (ward_id) REFERENCES Wards(ward_id)
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Requests (
                        request_id TEXT PRIMARY KEY,
                        requested_ward TEXT,
                        equipment_tag TEXT,
                        priority INTEGER NOT NULL,
                        eta TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending',
                        created_at TEXT NOT NULL,
                        patient_ref TEXT NOT NULL,
                        assigned_unit_id TEXT,
                        reservation_expires_at TEXT,
                        denial_reason TEXT,
                        cancellation_reason TEXT,
                        updated_at TEXT
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Transfers (
                        transfer_id TEXT PRIMARY KEY,
                        occupant_ref TEXT NOT NULL,
                        source_unit_id TEXT NOT NULL,
                        source_ward TEXT NOT NULL,
                        destination_unit_id TEXT NOT NULL,
                        destination_ward TEXT NOT NULL,
                        reason TEXT NOT NULL DEFAULT '',
                        transferred_at TEXT NOT NULL
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS DailyRecords (
                        record_date TEXT PRIMARY KEY,
                        timestamp TEXT NOT NULL,
                        hospital_stats TEXT NOT NULL,
                        ward_stats TEXT NOT NULL,
                        hourly_snapshots TEXT NOT NULL,
                        peak_hour INTEGER NOT NULL DEFAULT 0
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Snapshots (
                        captured_at TEXT PRIMARY KEY,
                        record_date TEXT NOT NULL,
                        payload TEXT NOT NULL
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS CleaningJobs (
                        job_id TEXT PRIMARY KEY,
                        unit_id TEXT NOT NULL,
                        ward_id TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending',
                        created_at TEXT NOT NULL,
                        assigned_to TEXT,
                        started_at TEXT,
                        completed_at TEXT
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS WardTransferRequests (
                        transfer_request_id TEXT PRIMARY KEY,
                        unit_id TEXT NOT NULL,
                        occupant_ref TEXT NOT NULL,
                        current_ward TEXT NOT NULL,
                        target_ward TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending',
                        requested_by TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        reason TEXT NOT NULL DEFAULT '',
                        notes TEXT,
                        reviewed_by TEXT,
                        reviewed_at TEXT,
                        denial_reason TEXT,
                        transfer_id TEXT,
                        destination_unit_id TEXT
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Alerts (
                        alert_id TEXT PRIMARY KEY,
                        level TEXT NOT NULL,
                        message TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        ward_id TEXT,
                        occupancy_rate REAL,
                        acknowledged INTEGER NOT NULL DEFAULT 0,
                        acknowledged_by TEXT,
                        acknowledged_at TEXT
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_cleaning_jobs_unit_status
                    ON CleaningJobs(unit_id, status);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_units_ward_status
                    ON Units(ward_id, status);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_requests_status_ward
                    ON Requests(status, requested_ward);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    # --- wards and units ---

    def save_wards(self, wards: Iterable[Ward]) -> None:
        rows = [(ward.ward_id, ward.capacity) for ward in wards]
        if not rows:
            return
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO Wards (ward_id, capacity) VALUES (?, ?)
                ON CONFLICT(ward_id) DO UPDATE SET capacity = excluded.capacity;
                """,
                rows,
            )
            conn.commit()

    def save_units(self, units: Iterable[Unit]) -> None:
        """Upsert unit rows; units are never deleted."""
        rows = [
            (
                unit.unit_id,
                unit.ward_id,
                unit.status.value,
                unit.status_changed_at.isoformat(),
                unit.equipment_tag,
                unit.occupant_ref,
                _iso(unit.expected_departure),
            )
            for unit in units
        ]
        if not rows:
            return
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO Units (
                    unit_id, ward_id, status, status_changed_at,
                    equipment_tag, occupant_ref, expected_departure
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(unit_id) DO UPDATE SET
                    ward_id = excluded.ward_id,
                    status = excluded.status,
                    status_changed_at = excluded.status_changed_at,
                    equipment_tag = excluded.equipment_tag,
                    occupant_ref = excluded.occupant_ref,
                    expected_departure = excluded.expected_departure;
                """,
                rows,
            )
            conn.commit()

    def list_wards(self) -> List[Ward]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT ward_id, capacity FROM Wards ORDER BY ward_id ASC;")
            ward_rows = cursor.fetchall()
            cursor.execute("SELECT unit_id, ward_id FROM Units ORDER BY unit_id ASC;")
            members: dict[str, list[str]] = {}
            for row in cursor.fetchall():
                members.setdefault(str(row["ward_id"]), []).append(str(row["unit_id"]))
        return [
            Ward(
                ward_id=str(row["ward_id"]),
                capacity=int(row["capacity"]),
                unit_ids=tuple(members.get(str(row["ward_id"]), [])),
            )
            for row in ward_rows
        ]

    def list_units(self) -> List[Unit]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT unit_id, ward_id, status, status_changed_at,
                       equipment_tag, occupant_ref, expected_departure
                FROM Units
                ORDER BY unit_id ASC;
                """
            )
            return [
                Unit(
                    unit_id=str(row["unit_id"]),
                    ward_id=str(row["ward_id"]),
                    status=UnitStatus(row["status"]),
                    status_changed_at=datetime.fromisoformat(row["status_changed_at"]),
                    equipment_tag=row["equipment_tag"],
                    occupant_ref=row["occupant_ref"],
                    expected_departure=_parse(row["expected_departure"]),
                )
                for row in cursor.fetchall()
            ]

    def count_units(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Units;")
            return int(cursor.fetchone()["count"])

    # --- requests ---

    def save_request(self, request: BedRequest) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Requests (
                    request_id, requested_ward, equipment_tag, priority, eta,
                    status, created_at, patient_ref, assigned_unit_id,
                    reservation_expires_at, denial_reason, cancellation_reason,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(request_id) DO UPDATE SET
                    status = excluded.status,
                    assigned_unit_id = excluded.assigned_unit_id,
                    reservation_expires_at = excluded.reservation_expires_at,
                    denial_reason = excluded.denial_reason,
                    cancellation_reason = excluded.cancellation_reason,
                    updated_at = excluded.updated_at;
                """,
                (
                    request.request_id,
                    request.requested_ward,
                    request.equipment_tag,
                    request.priority,
                    request.eta.isoformat(),
                    request.status.value,
                    request.created_at.isoformat(),
                    request.patient_ref,
                    request.assigned_unit_id,
                    _iso(request.reservation_expires_at),
                    request.denial_reason,
                    request.cancellation_reason,
                    _iso(request.updated_at),
                ),
            )
            conn.commit()

    def list_requests(self, status: Optional[RequestStatus] = None) -> List[BedRequest]:
        """Return requests, highest priority first, then oldest first."""
        query = """
            SELECT * FROM Requests
            {where}
            ORDER BY priority DESC, created_at ASC, request_id ASC;
        """
        params: tuple[str, ...] = ()
        where = ""
        if status is not None:
            where = "WHERE status = ?"
            params = (status.value,)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query.format(where=where), params)
            return [self._row_to_request(row) for row in cursor.fetchall()]

    def count_requests(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Requests;")
            return int(cursor.fetchone()["count"])

    @staticmethod
    def _row_to_request(row: sqlite3.Row) -> BedRequest:
        return BedRequest(
            request_id=str(row["request_id"]),
            requested_ward=row["requested_ward"],
            equipment_tag=row["equipment_tag"],
            priority=int(row["priority"]),
            eta=datetime.fromisoformat(row["eta"]),
            status=RequestStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            patient_ref=str(row["patient_ref"]),
            assigned_unit_id=row["assigned_unit_id"],
            reservation_expires_at=_parse(row["reservation_expires_at"]),
            denial_reason=row["denial_reason"],
            cancellation_reason=row["cancellation_reason"],
            updated_at=_parse(row["updated_at"]),
        )

    # --- transfers ---

    def save_transfer(self, record: TransferRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Transfers (
                    transfer_id, occupant_ref, source_unit_id, source_ward,
                    destination_unit_id, destination_ward, reason, transferred_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    record.transfer_id,
                    record.occupant_ref,
                    record.source_unit_id,
                    record.source_ward,
                    record.destination_unit_id,
                    record.destination_ward,
                    record.reason,
                    record.transferred_at.isoformat(),
                ),
            )
            conn.commit()

    def list_transfers(self) -> List[TransferRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Transfers ORDER BY transferred_at ASC, transfer_id ASC;")
            return [
                TransferRecord(
                    transfer_id=str(row["transfer_id"]),
                    occupant_ref=str(row["occupant_ref"]),
                    source_unit_id=str(row["source_unit_id"]),
                    source_ward=str(row["source_ward"]),
                    destination_unit_id=str(row["destination_unit_id"]),
                    destination_ward=str(row["destination_ward"]),
                    reason=str(row["reason"]),
                    transferred_at=datetime.fromisoformat(row["transferred_at"]),
                )
                for row in cursor.fetchall()
            ]

    def count_transfers(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Transfers;")
            return int(cursor.fetchone()["count"])

    # --- daily records ---

    def save_daily_record(self, record: DailyRecord) -> None:
        """Insert a closed day; an existing row for the same date is kept."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT OR IGNORE INTO DailyRecords (
                    record_date, timestamp, hospital_stats, ward_stats,
                    hourly_snapshots, peak_hour
                )
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (
                    record.record_date.isoformat(),
                    record.timestamp.isoformat(),
                    json.dumps(record.hospital.to_dict()),
                    json.dumps([stats.to_dict() for stats in record.wards]),
                    json.dumps([snapshot.to_dict() for snapshot in record.hourly]),
                    int(record.peak_hour),
                ),
            )
            if cursor.rowcount == 0:
                logger.warning(
                    "Daily record already stored; keeping original | record_date=%s",
                    record.record_date.isoformat(),
                )
            conn.commit()

    def list_daily_records(
        self,
        since: date,
        until: Optional[date] = None,
    ) -> List[DailyRecord]:
        """Return daily records with ``since <= record_date [<= until]`` in date order."""
        params: list[str] = [since.isoformat()]
        clause = "record_date >= ?"
        if until is not None:
            clause += " AND record_date <= ?"
            params.append(until.isoformat())
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT record_date, timestamp, hospital_stats, ward_stats,
                       hourly_snapshots, peak_hour
                FROM DailyRecords
                WHERE {clause}
                ORDER BY record_date ASC;
                """,
                tuple(params),
            )
            return [
                DailyRecord(
                    record_date=date.fromisoformat(row["record_date"]),
                    timestamp=datetime.fromisoformat(row["timestamp"]),
                    hospital=WardStats.from_dict(json.loads(row["hospital_stats"])),
                    wards=tuple(
                        WardStats.from_dict(item) for item in json.loads(row["ward_stats"])
                    ),
                    hourly=tuple(
                        OccupancySnapshot.from_dict(item)
                        for item in json.loads(row["hourly_snapshots"])
                    ),
                    peak_hour=bool(row["peak_hour"]),
                )
                for row in cursor.fetchall()
            ]

    def count_daily_records(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM DailyRecords;")
            return int(cursor.fetchone()["count"])

    # --- open-day snapshots ---

    def save_snapshot(self, record_date: date, snapshot: OccupancySnapshot) -> None:
        """Keep an hourly snapshot of the unfinished day until it is folded."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO Snapshots (captured_at, record_date, payload)
                VALUES (?, ?, ?);
                """,
                (
                    snapshot.timestamp.isoformat(),
                    record_date.isoformat(),
                    json.dumps(snapshot.to_dict()),
                ),
            )
            conn.commit()

    def list_open_snapshots(self) -> List[tuple[date, OccupancySnapshot]]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT record_date, payload FROM Snapshots ORDER BY record_date ASC, captured_at ASC;"
            )
            return [
                (
                    date.fromisoformat(row["record_date"]),
                    OccupancySnapshot.from_dict(json.loads(row["payload"])),
                )
                for row in cursor.fetchall()
            ]

    def delete_snapshots(self, record_date: date) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM Snapshots WHERE record_date = ?;", (record_date.isoformat(),))
            conn.commit()

    # --- cleaning jobs ---

    def save_cleaning_jobs(self, jobs: Iterable[CleaningJob]) -> None:
        rows = [
            (
                job.job_id,
                job.unit_id,
                job.ward_id,
                job.status.value,
                job.created_at.isoformat(),
                job.assigned_to,
                _iso(job.started_at),
                _iso(job.completed_at),
            )
            for job in jobs
        ]
        if not rows:
            return
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO CleaningJobs (
                    job_id, unit_id, ward_id, status, created_at,
                    assigned_to, started_at, completed_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(job_id) DO UPDATE SET
                    status = excluded.status,
                    assigned_to = excluded.assigned_to,
                    started_at = excluded.started_at,
                    completed_at = excluded.completed_at;
                """,
                rows,
            )
            conn.commit()

    def get_cleaning_job(self, job_id: str) -> Optional[CleaningJob]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM CleaningJobs WHERE job_id = ?;", (job_id,))
            row = cursor.fetchone()
        return self._row_to_cleaning_job(row) if row is not None else None

    def find_open_cleaning_job(self, unit_id: str) -> Optional[CleaningJob]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM CleaningJobs
                WHERE unit_id = ? AND status != ?
                ORDER BY created_at DESC, job_id DESC
                LIMIT 1;
                """,
                (unit_id, CleaningJobStatus.COMPLETED.value),
            )
            row = cursor.fetchone()
        return self._row_to_cleaning_job(row) if row is not None else None

    def list_cleaning_jobs(
        self,
        status: Optional[CleaningJobStatus] = None,
        ward_id: Optional[str] = None,
    ) -> List[CleaningJob]:
        """Return jobs newest first, optionally filtered by status and ward."""
        clauses: list[str] = []
        params: list[str] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if ward_id is not None:
            clauses.append("ward_id = ?")
            params.append(ward_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT * FROM CleaningJobs {where} ORDER BY created_at DESC, job_id DESC;",
                tuple(params),
            )
            return [self._row_to_cleaning_job(row) for row in cursor.fetchall()]

    def count_cleaning_jobs(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM CleaningJobs;")
            return int(cursor.fetchone()["count"])

    @staticmethod
    def _row_to_cleaning_job(row: sqlite3.Row) -> CleaningJob:
        return CleaningJob(
            job_id=str(row["job_id"]),
            unit_id=str(row["unit_id"]),
            ward_id=str(row["ward_id"]),
            status=CleaningJobStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            assigned_to=row["assigned_to"],
            started_at=_parse(row["started_at"]),
            completed_at=_parse(row["completed_at"]),
        )

    # --- ward transfer requests ---

    def save_ward_transfer_request(self, request: WardTransferRequest) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO WardTransferRequests (
                    transfer_request_id, unit_id, occupant_ref, current_ward,
                    target_ward, status, requested_by, created_at, reason, notes,
                    reviewed_by, reviewed_at, denial_reason, transfer_id,
                    destination_unit_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(transfer_request_id) DO UPDATE SET
                    status = excluded.status,
                    reason = excluded.reason,
                    notes = excluded.notes,
                    reviewed_by = excluded.reviewed_by,
                    reviewed_at = excluded.reviewed_at,
                    denial_reason = excluded.denial_reason,
                    transfer_id = excluded.transfer_id,
                    destination_unit_id = excluded.destination_unit_id;
                """,
                (
                    request.transfer_request_id,
                    request.unit_id,
                    request.occupant_ref,
                    request.current_ward,
                    request.target_ward,
                    request.status.value,
                    request.requested_by,
                    request.created_at.isoformat(),
                    request.reason,
                    request.notes,
                    request.reviewed_by,
                    _iso(request.reviewed_at),
                    request.denial_reason,
                    request.transfer_id,
                    request.destination_unit_id,
                ),
            )
            conn.commit()

    def get_ward_transfer_request(self, transfer_request_id: str) -> Optional[WardTransferRequest]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM WardTransferRequests WHERE transfer_request_id = ?;",
                (transfer_request_id,),
            )
            row = cursor.fetchone()
        return self._row_to_ward_transfer_request(row) if row is not None else None

    def list_ward_transfer_requests(
        self,
        status: Optional[TransferRequestStatus] = None,
        current_ward: Optional[str] = None,
        target_ward: Optional[str] = None,
        unit_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[WardTransferRequest]:
        """Return transfer requests newest first."""
        clauses: list[str] = []
        params: list[object] = []
        for column, value in (
            ("status", status.value if status is not None else None),
            ("current_ward", current_ward),
            ("target_ward", target_ward),
            ("unit_id", unit_id),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit_clause = ""
        if limit is not None:
            limit_clause = "LIMIT ?"
            params.append(int(limit))
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT * FROM WardTransferRequests
                {where}
                ORDER BY created_at DESC, transfer_request_id DESC
                {limit_clause};
                """,
                tuple(params),
            )
            return [self._row_to_ward_transfer_request(row) for row in cursor.fetchall()]

    def count_ward_transfer_requests(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM WardTransferRequests;")
            return int(cursor.fetchone()["count"])

    @staticmethod
    def _row_to_ward_transfer_request(row: sqlite3.Row) -> WardTransferRequest:
        return WardTransferRequest(
            transfer_request_id=str(row["transfer_request_id"]),
            unit_id=str(row["unit_id"]),
            occupant_ref=str(row["occupant_ref"]),
            current_ward=str(row["current_ward"]),
            target_ward=str(row["target_ward"]),
            status=TransferRequestStatus(row["status"]),
            requested_by=str(row["requested_by"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            reason=str(row["reason"]),
            notes=row["notes"],
            reviewed_by=row["reviewed_by"],
            reviewed_at=_parse(row["reviewed_at"]),
            denial_reason=row["denial_reason"],
            transfer_id=row["transfer_id"],
            destination_unit_id=row["destination_unit_id"],
        )

    # --- alerts ---

    def save_alert(self, alert: OccupancyAlert) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO Alerts (
                    alert_id, level, message, created_at, ward_id, occupancy_rate,
                    acknowledged, acknowledged_by, acknowledged_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(alert_id) DO UPDATE SET
                    acknowledged = excluded.acknowledged,
                    acknowledged_by = excluded.acknowledged_by,
                    acknowledged_at = excluded.acknowledged_at;
                """,
                (
                    alert.alert_id,
                    alert.level.value,
                    alert.message,
                    alert.created_at.isoformat(),
                    alert.ward_id,
                    alert.occupancy_rate,
                    int(alert.acknowledged),
                    alert.acknowledged_by,
                    _iso(alert.acknowledged_at),
                ),
            )
            conn.commit()

    def get_alert(self, alert_id: str) -> Optional[OccupancyAlert]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Alerts WHERE alert_id = ?;", (alert_id,))
            row = cursor.fetchone()
        return self._row_to_alert(row) if row is not None else None

    def list_alerts(
        self,
        level: Optional[AlertLevel] = None,
        ward_id: Optional[str] = None,
        acknowledged: Optional[bool] = None,
    ) -> List[OccupancyAlert]:
        """Return alerts newest first."""
        clauses: list[str] = []
        params: list[object] = []
        if level is not None:
            clauses.append("level = ?")
            params.append(level.value)
        if ward_id is not None:
            clauses.append("ward_id = ?")
            params.append(ward_id)
        if acknowledged is not None:
            clauses.append("acknowledged = ?")
            params.append(int(acknowledged))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT * FROM Alerts {where} ORDER BY created_at DESC, alert_id DESC;",
                tuple(params),
            )
            return [self._row_to_alert(row) for row in cursor.fetchall()]

    def count_alerts(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Alerts;")
            return int(cursor.fetchone()["count"])

    @staticmethod
    def _row_to_alert(row: sqlite3.Row) -> OccupancyAlert:
        return OccupancyAlert(
            alert_id=str(row["alert_id"]),
            level=AlertLevel(row["level"]),
            message=str(row["message"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            ward_id=row["ward_id"],
            occupancy_rate=float(row["occupancy_rate"]) if row["occupancy_rate"] is not None else None,
            acknowledged=bool(row["acknowledged"]),
            acknowledged_by=row["acknowledged_by"],
            acknowledged_at=_parse(row["acknowledged_at"]),
        )
