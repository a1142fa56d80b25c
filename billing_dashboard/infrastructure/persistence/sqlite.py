import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ...domain.models import (
    Payment,
    PaymentStatus,
    Plan,
    Subscription,
    SubscriptionStatus,
    User,
    UserActivity,
    WebhookEventRecord,
)
from ...domain.ports.persistence import DuplicateRecordError, PersistenceGateway


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway.

    One connection is shared for the process lifetime. Every public method is
    serialised through a re-entrant lock, and ``transaction()`` lets callers
    group several writes so they commit or roll back together.
    """

    def __init__(self, path: Path) -> None:
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._depth = 0
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    first_name TEXT NOT NULL DEFAULT '',
                    last_name TEXT NOT NULL DEFAULT '',
                    stripe_customer_id TEXT UNIQUE,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    stripe_price_id TEXT NOT NULL UNIQUE,
                    stripe_product_id TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    currency TEXT NOT NULL,
                    interval TEXT NOT NULL,
                    interval_count INTEGER NOT NULL DEFAULT 1,
                    features TEXT NOT NULL DEFAULT '[]',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    plan_id INTEGER,
                    stripe_subscription_id TEXT NOT NULL UNIQUE,
                    stripe_customer_id TEXT,
                    price_id TEXT,
                    status TEXT NOT NULL,
                    current_period_start TEXT NOT NULL,
                    current_period_end TEXT NOT NULL,
                    cancel_at_period_end INTEGER NOT NULL DEFAULT 0,
                    canceled_at TEXT,
                    trial_start TEXT,
                    trial_end TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id),
                    FOREIGN KEY(plan_id) REFERENCES plans(id)
                );

                CREATE INDEX IF NOT EXISTS idx_subscriptions_user_id
                    ON subscriptions(user_id, created_at DESC);

                CREATE TABLE IF NOT EXISTS payments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    subscription_id INTEGER,
                    stripe_payment_id TEXT NOT NULL UNIQUE,
                    amount INTEGER NOT NULL,
                    currency TEXT NOT NULL,
                    status TEXT NOT NULL,
                    description TEXT,
                    receipt_url TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id),
                    FOREIGN KEY(subscription_id) REFERENCES subscriptions(id)
                );

                CREATE INDEX IF NOT EXISTS idx_payments_user_created
                    ON payments(user_id, created_at DESC);

                CREATE TABLE IF NOT EXISTS user_activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    action TEXT NOT NULL,
                    description TEXT NOT NULL,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(user_id) REFERENCES users(id)
                );

                CREATE INDEX IF NOT EXISTS idx_user_activities_user_created
                    ON user_activities(user_id, created_at DESC);

                CREATE TABLE IF NOT EXISTS webhook_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_id TEXT NOT NULL UNIQUE,
                    event_type TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    error TEXT,
                    received_at TEXT NOT NULL,
                    processed_at TEXT NOT NULL
                );
                """
            )

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator["SQLitePersistence"]:
        with self._lock:
            if self._depth:
                # Nested scopes join the outermost transaction.
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            self._depth = 1
            try:
                with self._conn:
                    yield self
            finally:
                self._depth = 0

    # UserRepository API ----------------------------------------------------
    def get_user_by_id(self, user_id: int) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM users WHERE email = ?", (email.lower(),))
            row = cur.fetchone()
        return self._row_to_user(row) if row else None

    def create_user(
        self,
        email: str,
        password_hash: str,
        first_name: str = "",
        last_name: str = "",
    ) -> User:
        now = self._now()
        try:
            with self.transaction():
                cur = self._conn.execute(
                    """
                    INSERT INTO users (email, password_hash, first_name, last_name, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (email.lower(), password_hash, first_name, last_name, now, now),
                )
                row = self._fetch("users", cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(f"User {email} already exists.") from exc
        if not row:
            raise RuntimeError("Failed to persist user.")
        return self._row_to_user(row)

    def set_user_customer_id(self, user_id: int, stripe_customer_id: str) -> User:
        with self.transaction():
            self._conn.execute(
                "UPDATE users SET stripe_customer_id = ?, updated_at = ? WHERE id = ?",
                (stripe_customer_id, self._now(), user_id),
            )
            row = self._fetch("users", user_id)
        if not row:
            raise ValueError(f"User {user_id} not found.")
        return self._row_to_user(row)

    # PlanRepository API ----------------------------------------------------
    def get_plan(self, plan_id: int) -> Optional[Plan]:
        with self._lock:
            row = self._fetch("plans", plan_id)
        return self._row_to_plan(row) if row else None

    def list_plans(self, active_only: bool = True) -> List[Plan]:
        query = "SELECT * FROM plans"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY amount ASC"
        with self._lock:
            rows = self._conn.execute(query).fetchall()
        return [self._row_to_plan(row) for row in rows]

    def create_plan(
        self,
        name: str,
        stripe_price_id: str,
        stripe_product_id: str,
        amount: int,
        currency: str,
        interval: str,
        interval_count: int = 1,
        features: Optional[List[str]] = None,
    ) -> Plan:
        try:
            with self.transaction():
                cur = self._conn.execute(
                    """
                    INSERT INTO plans (
                        name, stripe_price_id, stripe_product_id, amount, currency,
                        interval, interval_count, features, is_active, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?)
                    """,
                    (
                        name,
                        stripe_price_id,
                        stripe_product_id,
                        amount,
                        currency.lower(),
                        interval,
                        interval_count,
                        json.dumps(features or []),
                        self._now(),
                    ),
                )
                row = self._fetch("plans", cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(f"Plan for price {stripe_price_id} already exists.") from exc
        return self._row_to_plan(row)

    # SubscriptionRepository API -------------------------------------------
    def create_subscription(
        self,
        user_id: int,
        plan_id: Optional[int],
        stripe_subscription_id: str,
        stripe_customer_id: Optional[str],
        price_id: Optional[str],
        status: SubscriptionStatus,
        current_period_start: datetime,
        current_period_end: datetime,
        cancel_at_period_end: bool = False,
        canceled_at: Optional[datetime] = None,
        trial_start: Optional[datetime] = None,
        trial_end: Optional[datetime] = None,
    ) -> Subscription:
        now = self._now()
        try:
            with self.transaction():
                cur = self._conn.execute(
                    """
                    INSERT INTO subscriptions (
                        user_id, plan_id, stripe_subscription_id, stripe_customer_id, price_id,
                        status, current_period_start, current_period_end, cancel_at_period_end,
                        canceled_at, trial_start, trial_end, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        plan_id,
                        stripe_subscription_id,
                        stripe_customer_id,
                        price_id,
                        status.value,
                        self._format(current_period_start),
                        self._format(current_period_end),
                        int(cancel_at_period_end),
                        self._format(canceled_at),
                        self._format(trial_start),
                        self._format(trial_end),
                        now,
                        now,
                    ),
                )
                row = self._fetch("subscriptions", cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(
                f"Subscription {stripe_subscription_id} already exists."
            ) from exc
        return self._row_to_subscription(row)

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        with self._lock:
            row = self._fetch("subscriptions", subscription_id)
        return self._row_to_subscription(row) if row else None

    def get_subscription_for_user(self, subscription_id: int, user_id: int) -> Optional[Subscription]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM subscriptions WHERE id = ? AND user_id = ?",
                (subscription_id, user_id),
            )
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def get_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM subscriptions WHERE stripe_subscription_id = ?",
                (stripe_subscription_id,),
            )
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def list_subscriptions_for_user(self, user_id: int) -> List[Subscription]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM subscriptions WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_subscription(row) for row in rows]

    def update_subscription_state(
        self,
        subscription_id: int,
        *,
        status: SubscriptionStatus,
        current_period_start: datetime,
        current_period_end: datetime,
        cancel_at_period_end: bool,
        canceled_at: Optional[datetime],
        trial_start: Optional[datetime],
        trial_end: Optional[datetime],
    ) -> Subscription:
        with self.transaction():
            self._conn.execute(
                """
                UPDATE subscriptions
                SET status = ?, current_period_start = ?, current_period_end = ?,
                    cancel_at_period_end = ?, canceled_at = ?, trial_start = ?,
                    trial_end = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    status.value,
                    self._format(current_period_start),
                    self._format(current_period_end),
                    int(cancel_at_period_end),
                    self._format(canceled_at),
                    self._format(trial_start),
                    self._format(trial_end),
                    self._now(),
                    subscription_id,
                ),
            )
            row = self._fetch("subscriptions", subscription_id)
        if not row:
            raise ValueError(f"Subscription {subscription_id} not found.")
        return self._row_to_subscription(row)

    # PaymentRepository API -------------------------------------------------
    def create_payment(
        self,
        user_id: int,
        subscription_id: Optional[int],
        stripe_payment_id: str,
        amount: int,
        currency: str,
        status: PaymentStatus,
        description: Optional[str],
        receipt_url: Optional[str],
    ) -> Payment:
        try:
            with self.transaction():
                cur = self._conn.execute(
                    """
                    INSERT INTO payments (
                        user_id, subscription_id, stripe_payment_id, amount, currency,
                        status, description, receipt_url, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        subscription_id,
                        stripe_payment_id,
                        amount,
                        currency,
                        status.value,
                        description,
                        receipt_url,
                        self._now(),
                    ),
                )
                row = self._fetch("payments", cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(f"Payment {stripe_payment_id} already recorded.") from exc
        return self._row_to_payment(row)

    def get_payment_by_stripe_id(self, stripe_payment_id: str) -> Optional[Payment]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM payments WHERE stripe_payment_id = ?", (stripe_payment_id,)
            )
            row = cur.fetchone()
        return self._row_to_payment(row) if row else None

    def get_payment_for_user(self, payment_id: int, user_id: int) -> Optional[Payment]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM payments WHERE id = ? AND user_id = ?", (payment_id, user_id)
            )
            row = cur.fetchone()
        return self._row_to_payment(row) if row else None

    def list_payments_for_user(
        self,
        user_id: int,
        *,
        status: Optional[PaymentStatus] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[Payment]:
        query = "SELECT * FROM payments WHERE user_id = ?"
        params: List[Any] = [user_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_payment(row) for row in rows]

    def count_payments_for_user(self, user_id: int, status: Optional[PaymentStatus] = None) -> int:
        query = "SELECT COUNT(*) FROM payments WHERE user_id = ?"
        params: List[Any] = [user_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        with self._lock:
            row = self._conn.execute(query, params).fetchone()
        return int(row[0])

    # ActivityRepository API ------------------------------------------------
    def create_activity(
        self,
        user_id: int,
        action: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UserActivity:
        data = json.dumps(metadata or {}, default=str, ensure_ascii=False)
        with self.transaction():
            cur = self._conn.execute(
                """
                INSERT INTO user_activities (user_id, action, description, metadata, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, action, description, data, self._now()),
            )
            row = self._fetch("user_activities", cur.lastrowid)
        return self._row_to_activity(row)

    def list_activities_for_user(self, user_id: int, limit: int, offset: int = 0) -> List[UserActivity]:
        with self._lock:
            cur = self._conn.execute(
                """
                SELECT * FROM user_activities
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (user_id, limit, offset),
            )
            rows = cur.fetchall()
        return [self._row_to_activity(row) for row in rows]

    def count_activities_for_user(self, user_id: int) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM user_activities WHERE user_id = ?", (user_id,)
            ).fetchone()
        return int(row[0])

    # WebhookEventRepository API -------------------------------------------
    def record_webhook_event(
        self,
        event_id: str,
        event_type: str,
        outcome: str,
        error: Optional[str],
        received_at: str,
    ) -> WebhookEventRecord:
        with self.transaction():
            self._conn.execute(
                """
                INSERT INTO webhook_events (event_id, event_type, outcome, error, received_at, processed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(event_id) DO UPDATE SET
                    outcome = excluded.outcome,
                    error = excluded.error,
                    processed_at = excluded.processed_at
                """,
                (event_id, event_type, outcome, error, received_at, self._now()),
            )
            cur = self._conn.execute("SELECT * FROM webhook_events WHERE event_id = ?", (event_id,))
            row = cur.fetchone()
        return self._row_to_webhook_event(row)

    def get_webhook_event(self, event_id: str) -> Optional[WebhookEventRecord]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM webhook_events WHERE event_id = ?", (event_id,))
            row = cur.fetchone()
        return self._row_to_webhook_event(row) if row else None

    # Helpers ----------------------------------------------------------------
    def _fetch(self, table: str, row_id: Optional[int]) -> Optional[sqlite3.Row]:
        cur = self._conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        return cur.fetchone()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _format(value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    @staticmethod
    def _parse_datetime(value: str) -> datetime:
        result = datetime.fromisoformat(value)
        if result.tzinfo is None:
            return result.replace(tzinfo=timezone.utc)
        return result.astimezone(timezone.utc)

    def _parse_optional(self, value: Optional[str]) -> Optional[datetime]:
        return self._parse_datetime(value) if value else None

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            stripe_customer_id=row["stripe_customer_id"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_plan(self, row: sqlite3.Row) -> Plan:
        return Plan(
            id=row["id"],
            name=row["name"],
            stripe_price_id=row["stripe_price_id"],
            stripe_product_id=row["stripe_product_id"],
            amount=row["amount"],
            currency=row["currency"],
            interval=row["interval"],
            interval_count=row["interval_count"],
            is_active=bool(row["is_active"]),
            created_at=self._parse_datetime(row["created_at"]),
            features=json.loads(row["features"]),
        )

    def _row_to_subscription(self, row: sqlite3.Row) -> Subscription:
        return Subscription(
            id=row["id"],
            user_id=row["user_id"],
            plan_id=row["plan_id"],
            stripe_subscription_id=row["stripe_subscription_id"],
            stripe_customer_id=row["stripe_customer_id"],
            price_id=row["price_id"],
            status=SubscriptionStatus(row["status"]),
            current_period_start=self._parse_datetime(row["current_period_start"]),
            current_period_end=self._parse_datetime(row["current_period_end"]),
            cancel_at_period_end=bool(row["cancel_at_period_end"]),
            canceled_at=self._parse_optional(row["canceled_at"]),
            trial_start=self._parse_optional(row["trial_start"]),
            trial_end=self._parse_optional(row["trial_end"]),
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_payment(self, row: sqlite3.Row) -> Payment:
        return Payment(
            id=row["id"],
            user_id=row["user_id"],
            subscription_id=row["subscription_id"],
            stripe_payment_id=row["stripe_payment_id"],
            amount=row["amount"],
            currency=row["currency"],
            status=PaymentStatus(row["status"]),
            description=row["description"],
            receipt_url=row["receipt_url"],
            created_at=self._parse_datetime(row["created_at"]),
        )

    def _row_to_activity(self, row: sqlite3.Row) -> UserActivity:
        return UserActivity(
            id=row["id"],
            user_id=row["user_id"],
            action=row["action"],
            description=row["description"],
            created_at=self._parse_datetime(row["created_at"]),
            metadata=json.loads(row["metadata"]),
        )

    def _row_to_webhook_event(self, row: sqlite3.Row) -> WebhookEventRecord:
        return WebhookEventRecord(
            id=row["id"],
            event_id=row["event_id"],
            event_type=row["event_type"],
            outcome=row["outcome"],
            error=row["error"],
            received_at=self._parse_datetime(row["received_at"]),
            processed_at=self._parse_datetime(row["processed_at"]),
        )
