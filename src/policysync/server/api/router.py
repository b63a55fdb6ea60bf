"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from policysync.server.api import health, policies, rule_groups, tokens

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(tokens.router)
router.include_router(rule_groups.router)
router.include_router(policies.router)
