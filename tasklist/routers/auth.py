from fastapi import APIRouter, status

from tasklist.dependencies import IdentityDep
from tasklist.models import AuthResult, Credentials

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/signup", response_model=AuthResult, status_code=status.HTTP_201_CREATED)
async def signup(credentials: Credentials, identity: IdentityDep):
    """Register an account and return a bearer token"""
    return await identity.signup(credentials.email, credentials.password)


@router.post("/login", response_model=AuthResult)
async def login(credentials: Credentials, identity: IdentityDep):
    return await identity.login(credentials.email, credentials.password)
