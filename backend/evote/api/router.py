"""
API router configuration.
"""
from fastapi import APIRouter

from evote.api.endpoints import admin, candidates, elections, sync, voters, voting, webauthn


api_router = APIRouter()

api_router.include_router(
    admin.router,
    prefix="/admin",
    tags=["Admin"]
)

api_router.include_router(
    voters.router,
    prefix="/voters",
    tags=["Voters"]
)

api_router.include_router(
    webauthn.router,
    prefix="/webauthn",
    tags=["Biometric Verification"]
)

api_router.include_router(
    elections.router,
    prefix="/elections",
    tags=["Elections"]
)

api_router.include_router(
    candidates.router,
    prefix="/candidates",
    tags=["Candidates"]
)

api_router.include_router(
    voting.router,
    prefix="/voting",
    tags=["Voting"]
)

api_router.include_router(
    sync.router,
    prefix="/sync",
    tags=["Sync"]
)
