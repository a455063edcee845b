from typing import List, Optional

import redis as _redis
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.utils import now_ts

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS exchanges (
  id TEXT PRIMARY KEY,
  kind TEXT NOT NULL,
  tag TEXT,
  connection_id TEXT,
  invitation_id TEXT,
  invitation_url TEXT,
  created_at BIGINT NOT NULL
);
CREATE INDEX IF NOT EXISTS exchanges_created_at ON exchanges (created_at);
"""


def init_db(settings):
    kwargs = {"pool_pre_ping": True}
    if settings.db_dsn.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if settings.db_dsn in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(settings.db_dsn, **kwargs)
    with engine.begin() as conn:
        for stmt in SCHEMA_SQL.split(";"):
            sql = stmt.strip()
            if sql:
                conn.execute(text(sql))
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    return engine, Session


def init_redis(settings):
    return _redis.Redis.from_url(settings.redis_url, decode_responses=True)


def record_exchange(
    Session,
    exchange_id: str,
    kind: str,
    tag: Optional[str] = None,
    connection_id: Optional[str] = None,
    invitation_id: Optional[str] = None,
    invitation_url: Optional[str] = None,
):
    with Session.begin() as session:
        session.execute(
            text(
                "INSERT INTO exchanges (id,kind,tag,connection_id,invitation_id,invitation_url,created_at) "
                "VALUES (:id,:k,:t,:c,:i,:u,:ts) "
                "ON CONFLICT (id) DO UPDATE SET invitation_id=EXCLUDED.invitation_id, "
                "invitation_url=EXCLUDED.invitation_url"
            ),
            {
                "id": exchange_id,
                "k": kind,
                "t": tag,
                "c": connection_id,
                "i": invitation_id,
                "u": invitation_url,
                "ts": now_ts(),
            },
        )


def list_exchanges(Session, kind: Optional[str] = None, limit: int = 100) -> List[dict]:
    sql = "SELECT id,kind,tag,connection_id,invitation_id,invitation_url,created_at FROM exchanges"
    params = {"lim": limit}
    if kind:
        sql += " WHERE kind=:k"
        params["k"] = kind
    sql += " ORDER BY created_at DESC, id LIMIT :lim"
    with Session() as session:
        rows = session.execute(text(sql), params).all()
    return [
        {
            "id": row[0],
            "kind": row[1],
            "tag": row[2],
            "connectionId": row[3],
            "invitationId": row[4],
            "invitationUrl": row[5],
            "createdAt": row[6],
        }
        for row in rows
    ]


def health_check(engine):
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
