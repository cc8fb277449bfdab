# clypse/models/kv_store_table.py
# Key/value rows backing the sql storage backend

from sqlalchemy import Table, Column, Text, TIMESTAMP, Index

from clypse.db.base import metadata


kv_store = Table(
    'kv_store',
    metadata,
    Column('key', Text, primary_key=True),  # e.g. files:AB3K, rooms:AB3K:messages
    Column('value', Text, nullable=False),  # JSON text
    Column('updated_at', TIMESTAMP(timezone=True), nullable=False),
    Index('ix_kv_store_updated_at', 'updated_at'),
)
