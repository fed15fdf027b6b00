"""
SQLAlchemy declarative base and async engine/session factories.

Two engines are created: the ordinary application connection and a
privileged (service-role) connection used only for elevated writes.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from clubbot.config import settings


class Base(DeclarativeBase):
    pass


engine = create_async_engine(
    settings.async_database_url,
    echo=False,
    pool_pre_ping=True,
)

privileged_engine = create_async_engine(
    settings.async_privileged_database_url,
    echo=False,
    pool_pre_ping=True,
)

AsyncSessionFactory: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

PrivilegedSessionFactory: async_sessionmaker[AsyncSession] = async_sessionmaker(
    privileged_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
