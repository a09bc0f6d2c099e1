"""
Alter Compatibility Backend — Compatibility Service (Business Logic Orchestrator)
==================================================================================

What:  Caller of the scoring core. Adds everything the core leaves out on
       purpose: timeout, retry policy, profile formatting and the
       compatibility cache.
Who:   Called by route handlers; calls the scoring core and the database.
When:  For every compatibility request.

Orchestration Flow (POST /api/compatibility/calculate):
    ┌──────────┐    ┌─────────────┐  miss  ┌──────────────────┐    ┌──────────┐
    │  Hash    │───▶│ Cache       │───────▶│ evaluate (core)  │───▶│  Store   │
    │ profiles │    │ lookup (DB) │        │ timeout + retry  │    │  (DB)    │
    └──────────┘    └─────────────┘        └──────────────────┘    └──────────┘
                          │ hit
                          ▼
                    cached scores

Failure policy:
    Provider and validation errors propagate unchanged; no fallback scores
    are ever returned or cached. SQLAlchemy errors are wrapped in
    DatabaseError so internals never reach the client.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from altermatch.config import settings
from altermatch.exceptions import (
    ArgumentError,
    DatabaseError,
    NotFoundError,
    ProviderTimeoutError,
)
from altermatch.models.compatibility_cache import CompatibilityCache
from altermatch.schemas.compatibility import (
    BatchCompatibilityResponse,
    CacheStatsResponse,
    CompatibilityResult,
    CompatibilityScores,
    UserProfile,
)
from altermatch.scoring import evaluate_compatibility
from altermatch.services.llm_base import LLMClient
from altermatch.services.profile_formatter import (
    format_profile,
    profile_has_changed,
    profile_hash,
)
from altermatch.services.providers import get_llm_client
from altermatch.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


class CompatibilityService:
    """
    Business logic layer for compatibility scoring.

    Args:
        llm_client: Provider to use. Defaults to the process-wide client
            from services.providers, resolved on first use.
        retry_policy: Caller retry policy. Defaults to the configured one.
        timeout: Seconds allowed per evaluation attempt.
        cache_ttl: Lifetime of a cache row.
    """

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        cache_ttl: Optional[timedelta] = None,
        batch_concurrency: Optional[int] = None,
    ):
        self._llm_client = llm_client
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.timeout = timeout if timeout is not None else settings.llm_timeout_seconds
        self.cache_ttl = cache_ttl or timedelta(days=settings.cache_ttl_days)
        self.batch_concurrency = batch_concurrency or settings.batch_concurrency

    @property
    def llm_client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    # ══════════════════════════════════════════════════════════════════════
    # Evaluation (no persistence)
    # ══════════════════════════════════════════════════════════════════════

    async def evaluate_profiles(self, profile1: str, profile2: str) -> CompatibilityResult:
        """
        Score two profile texts with timeout and retry policy applied.

        Raises:
            ArgumentError, ProviderError (incl. ProviderTimeoutError),
            MalformedResponse, OutOfRangeScore, EmptyInsight
        """
        return await self.retry_policy.call(
            self._evaluate_once,
            profile1,
            profile2,
            operation="compatibility evaluation",
        )

    async def _evaluate_once(self, profile1: str, profile2: str) -> CompatibilityResult:
        try:
            return await asyncio.wait_for(
                evaluate_compatibility(profile1, profile2, self.llm_client),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Compatibility evaluation exceeded %.1fs", self.timeout)
            raise ProviderTimeoutError(
                timeout=self.timeout,
                context={"provider": self.llm_client.name},
            ) from e

    # ══════════════════════════════════════════════════════════════════════
    # Cached scoring
    # ══════════════════════════════════════════════════════════════════════

    async def get_or_calculate(
        self,
        db: AsyncSession,
        user: UserProfile,
        target: UserProfile,
        embedding_score: Optional[float] = None,
    ) -> CompatibilityScores:
        """
        Return cached scores for (user, target) or compute and store them.

        A cache row is used only if both profile hashes still match and it
        has not expired.
        """
        if user.id == target.id:
            raise ArgumentError(
                message="A user cannot be scored against themselves",
                argument="target",
            )

        user_hash = profile_hash(user)
        target_hash = profile_hash(target)

        cached = await self.get_cache(db, user.id, target.id, user_hash, target_hash)
        if cached is not None:
            return self._to_scores(cached, cached=True)

        logger.info("Calculating compatibility: %s -> %s", user.id, target.id)
        result = await self.evaluate_profiles(format_profile(user), format_profile(target))

        entry = await self.save_cache(
            db,
            user_id=user.id,
            target_user_id=target.id,
            result=result,
            user_hash=user_hash,
            target_hash=target_hash,
            embedding_score=embedding_score,
        )
        return self._to_scores(entry, cached=False)

    async def calculate_batch(
        self,
        db: AsyncSession,
        user: UserProfile,
        targets: List[UserProfile],
        embedding_scores: Optional[Dict[str, float]] = None,
    ) -> BatchCompatibilityResponse:
        """
        Score one user against many targets.

        How:
            1. One query fetches every candidate cache row for the user
            2. Rows whose target hash or expiry no longer match are ignored
            3. Misses are evaluated concurrently (bounded by batch_concurrency)
            4. New results are stored one by one on the shared session

        The first evaluation failure cancels the pending ones and propagates.
        """
        embedding_scores = embedding_scores or {}

        unique_targets: Dict[str, UserProfile] = {}
        for target in targets:
            if target.id == user.id:
                raise ArgumentError(
                    message="A user cannot be scored against themselves",
                    argument="targets",
                )
            unique_targets.setdefault(target.id, target)

        user_hash = profile_hash(user)
        now = datetime.now(timezone.utc)

        try:
            rows = await db.execute(
                select(CompatibilityCache).where(
                    CompatibilityCache.user_id == user.id,
                    CompatibilityCache.target_user_id.in_(list(unique_targets)),
                    CompatibilityCache.user_profile_hash == user_hash,
                )
            )
            candidates = list(rows.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error reading batch cache for %s: %s", user.id, str(e))
            raise DatabaseError(context={"user_id": user.id, "error_type": type(e).__name__})

        results: Dict[str, CompatibilityScores] = {}
        for entry in candidates:
            target = unique_targets.get(entry.target_user_id)
            if target is None or entry.is_expired(now):
                continue
            if profile_has_changed(target, entry.target_profile_hash):
                continue
            results[target.id] = self._to_scores(entry, cached=True)

        to_calculate = [t for t in unique_targets.values() if t.id not in results]
        cache_hits = len(results)
        logger.info(
            "Batch for %s: %d cache hits, %d to calculate",
            user.id,
            cache_hits,
            len(to_calculate),
        )

        if to_calculate:
            user_text = format_profile(user)
            semaphore = asyncio.Semaphore(self.batch_concurrency)

            async def evaluate(target: UserProfile) -> CompatibilityResult:
                async with semaphore:
                    return await self.evaluate_profiles(user_text, format_profile(target))

            tasks = [asyncio.ensure_future(evaluate(target)) for target in to_calculate]
            try:
                evaluated = await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

            for target, result in zip(to_calculate, evaluated):
                entry = await self.save_cache(
                    db,
                    user_id=user.id,
                    target_user_id=target.id,
                    result=result,
                    user_hash=user_hash,
                    target_hash=profile_hash(target),
                    embedding_score=embedding_scores.get(target.id),
                )
                results[target.id] = self._to_scores(entry, cached=False)

        return BatchCompatibilityResponse(
            user_id=user.id,
            results=results,
            cache_hits=cache_hits,
            calculated=len(to_calculate),
        )

    # ══════════════════════════════════════════════════════════════════════
    # Cache primitives
    # ══════════════════════════════════════════════════════════════════════

    async def get_cache(
        self,
        db: AsyncSession,
        user_id: str,
        target_user_id: str,
        user_hash: str,
        target_hash: str,
    ) -> Optional[CompatibilityCache]:
        """Cache row for the pair if both hashes match and it has not expired."""
        try:
            result = await db.execute(
                select(CompatibilityCache).where(
                    CompatibilityCache.user_id == user_id,
                    CompatibilityCache.target_user_id == target_user_id,
                    CompatibilityCache.user_profile_hash == user_hash,
                    CompatibilityCache.target_profile_hash == target_hash,
                )
            )
            entry = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error reading cache %s -> %s: %s", user_id, target_user_id, str(e))
            raise DatabaseError(context={"user_id": user_id, "target_user_id": target_user_id})

        if entry is None:
            logger.debug("Cache miss for %s -> %s", user_id, target_user_id)
            return None
        if entry.is_expired():
            logger.debug("Cache expired for %s -> %s", user_id, target_user_id)
            return None

        logger.debug("Cache hit for %s -> %s", user_id, target_user_id)
        return entry

    async def save_cache(
        self,
        db: AsyncSession,
        user_id: str,
        target_user_id: str,
        result: CompatibilityResult,
        user_hash: str,
        target_hash: str,
        embedding_score: Optional[float] = None,
    ) -> CompatibilityCache:
        """
        Store scores for the pair, updating the existing row when present.

        A concurrent request may insert the same pair between our read and
        our insert; the unique constraint rejects the second insert and the
        winning row is returned instead.
        """
        now = datetime.now(timezone.utc)
        values = dict(
            score_global=result.global_score,
            score_love=result.love,
            score_friendship=result.friendship,
            score_carnal=result.carnal,
            insight=result.insight,
            user_profile_hash=user_hash,
            target_profile_hash=target_hash,
            embedding_score=embedding_score,
            calculated_at=now,
            expires_at=now + self.cache_ttl,
        )

        try:
            existing = await self._find_pair(db, user_id, target_user_id)
            if existing is not None:
                for key, value in values.items():
                    setattr(existing, key, value)
                await db.flush()
                return existing

            entry = CompatibilityCache(user_id=user_id, target_user_id=target_user_id, **values)
            try:
                async with db.begin_nested():
                    db.add(entry)
            except IntegrityError:
                logger.debug(
                    "Cache row for %s -> %s created concurrently, reading it back",
                    user_id,
                    target_user_id,
                )
                winner = await self._find_pair(db, user_id, target_user_id)
                if winner is None:
                    raise
                return winner
            return entry
        except SQLAlchemyError as e:
            logger.error(
                "Database error saving cache %s -> %s: %s",
                user_id,
                target_user_id,
                str(e),
                exc_info=True,
            )
            raise DatabaseError(context={"user_id": user_id, "target_user_id": target_user_id})

    async def _find_pair(
        self, db: AsyncSession, user_id: str, target_user_id: str
    ) -> Optional[CompatibilityCache]:
        result = await db.execute(
            select(CompatibilityCache).where(
                CompatibilityCache.user_id == user_id,
                CompatibilityCache.target_user_id == target_user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_cached_scores(
        self, db: AsyncSession, user_id: str, target_user_id: str
    ) -> CompatibilityScores:
        """
        Stored scores for the pair regardless of profile hashes.

        Raises:
            NotFoundError: No row, or the row has expired.
        """
        try:
            entry = await self._find_pair(db, user_id, target_user_id)
        except SQLAlchemyError as e:
            logger.error("Database error reading cache %s -> %s: %s", user_id, target_user_id, str(e))
            raise DatabaseError(context={"user_id": user_id, "target_user_id": target_user_id})

        if entry is None or entry.is_expired():
            raise NotFoundError(
                resource="compatibility scores",
                resource_id=f"{user_id}:{target_user_id}",
            )
        return self._to_scores(entry, cached=True)

    async def invalidate_user_cache(self, db: AsyncSession, user_id: str) -> int:
        """Delete every row where the user is on either side. Returns the count."""
        try:
            result = await db.execute(
                delete(CompatibilityCache).where(
                    or_(
                        CompatibilityCache.user_id == user_id,
                        CompatibilityCache.target_user_id == user_id,
                    )
                )
            )
        except SQLAlchemyError as e:
            logger.error("Database error invalidating cache for %s: %s", user_id, str(e))
            raise DatabaseError(context={"user_id": user_id})

        count = result.rowcount or 0
        logger.info("Invalidated %d cache entries for user %s", count, user_id)
        return count

    async def get_cache_stats(self, db: AsyncSession) -> CacheStatsResponse:
        try:
            result = await db.execute(
                select(
                    func.count(CompatibilityCache.id),
                    func.min(CompatibilityCache.calculated_at),
                    func.max(CompatibilityCache.calculated_at),
                )
            )
            total, oldest, newest = result.one()
        except SQLAlchemyError as e:
            logger.error("Database error reading cache stats: %s", str(e))
            raise DatabaseError()

        return CacheStatsResponse(
            total_entries=total or 0,
            oldest_entry=oldest,
            newest_entry=newest,
        )

    async def clean_expired_caches(self, db: AsyncSession) -> int:
        """Delete rows whose expires_at has passed. Meant for a periodic job."""
        now = datetime.now(timezone.utc)
        try:
            result = await db.execute(
                delete(CompatibilityCache).where(
                    CompatibilityCache.expires_at.is_not(None),
                    CompatibilityCache.expires_at < now,
                )
            )
        except SQLAlchemyError as e:
            logger.error("Database error cleaning expired cache rows: %s", str(e))
            raise DatabaseError()

        count = result.rowcount or 0
        logger.info("Cleaned %d expired cache entries", count)
        return count

    @staticmethod
    def _to_scores(entry: CompatibilityCache, cached: bool) -> CompatibilityScores:
        return CompatibilityScores(
            user_id=entry.user_id,
            target_user_id=entry.target_user_id,
            global_score=entry.score_global,
            love=entry.score_love,
            friendship=entry.score_friendship,
            carnal=entry.score_carnal,
            insight=entry.insight,
            embedding_score=entry.embedding_score,
            cached=cached,
            calculated_at=entry.calculated_at,
            expires_at=entry.expires_at,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
# Stateless apart from configuration; the LLM client is resolved lazily.
compatibility_service = CompatibilityService()
