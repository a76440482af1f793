"""Gamification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from careerxp.auth.dependencies import get_caller_id
from careerxp.gamification.container import Services, get_services
from careerxp.gamification.exceptions import DeveloperNotFound
from careerxp.gamification.schemas import (
    BadgeResponse,
    BadgesResponse,
    EventRequest,
    EventResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    PointsBalanceResponse,
    ProfileResponse,
    SpendRequest,
    SpendResponse,
    StreakRecoveryResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


# ── Events ──


@router.post("/gamification/events", response_model=EventResponse)
async def submit_event(
    body: EventRequest,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    """Submit a developer action to the reward pipeline."""
    outcome = await services.events.submit_event(body.event_type, body.event_data, caller_id)
    return EventResponse(**outcome.to_dict())


# ── Read endpoints ──


@router.get("/gamification/profile", response_model=ProfileResponse)
async def get_profile(
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    """XP, level, tier and streak summary for the caller."""
    profile = await services.query_cache.developer_profile(caller_id)
    if profile is None:
        raise DeveloperNotFound(caller_id)
    return ProfileResponse(**profile)


@router.get("/gamification/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    kind: str = Query("xp", pattern="^(xp|streak|level)$"),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """Top developers by XP, streak or level."""
    entries = await services.query_cache.leaderboard(kind, limit)
    return LeaderboardResponse(kind=kind, entries=[LeaderboardEntry(**e) for e in entries])


@router.get("/gamification/badges", response_model=BadgesResponse)
async def get_badges(
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    """Badge catalog with the caller's earned flags."""
    badges = [BadgeResponse(**b) for b in await services.evaluator.list_badges(caller_id)]
    return BadgesResponse(
        badges=badges,
        total_available=len(badges),
        total_earned=sum(1 for b in badges if b.earned),
    )


# ── Points ──


@router.get("/points/balance", response_model=PointsBalanceResponse)
async def get_points_balance(
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    """Current points balance (applies a due monthly reset)."""
    balance = await services.points.get_balance(caller_id)
    return PointsBalanceResponse(**balance.__dict__)


@router.post("/points/spend", response_model=SpendResponse)
async def spend_points(
    body: SpendRequest,
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    """Spend points on a premium action; a short balance is a 402."""
    result = await services.points.spend(caller_id, body.spend_type, body.source_id, body.metadata)
    if not result.success:
        raise HTTPException(
            status_code=402,
            detail={"reason": result.reason, "cost": result.cost, "balance": result.balance},
        )
    return SpendResponse(success=True, cost=result.cost, balance=result.balance)


# ── Streak ──


@router.post("/gamification/streak/recover", response_model=StreakRecoveryResponse)
async def recover_streak(
    caller_id: str = Depends(get_caller_id),
    services: Services = Depends(get_services),
):
    """Buy back one missed day with XP."""
    result = await services.streaks.recover(caller_id)
    if result.success:
        await services.query_cache.invalidate_developer(caller_id)
    return StreakRecoveryResponse(**result.__dict__)
