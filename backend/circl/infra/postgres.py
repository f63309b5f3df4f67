"""AsyncPG pool management for the backend."""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg

from circl.settings import settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.pool.Pool] = None
_memory_mode = False


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			ssl="require" if settings.postgres_ssl else "disable",
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


def use_memory_mode(enabled: bool = True) -> None:
	"""Serve repositories from process memory instead of Postgres."""
	global _memory_mode
	_memory_mode = enabled


def is_memory_mode() -> bool:
	return _memory_mode


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	if _pool is None:
		raise RuntimeError("postgres pool unavailable")
	return _pool


async def get_pool_or_none() -> Optional[asyncpg.pool.Pool]:
	"""Return the pool, or None when running in memory mode."""
	if _memory_mode:
		return None
	try:
		return await get_pool()
	except (OSError, RuntimeError, asyncpg.PostgresError):
		logger.warning("postgres unavailable, switching to memory mode", exc_info=True)
		use_memory_mode(True)
		return None


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None
