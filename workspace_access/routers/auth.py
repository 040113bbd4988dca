from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from workspace_access.access.context import AccessContext
from workspace_access.schemas.api import (
    LoginIn,
    LoginOut,
    PasswordChangeIn,
    RegisterIn,
    RevokedOut,
    SelectTenantIn,
    SessionListItemOut,
    SessionListOut,
    SessionStateOut,
)
from workspace_access.schemas.identity import SessionOut, TenantOut, UserOut
from workspace_access.security.auth import client_address
from workspace_access.security.dependencies import (
    get_access_context,
    get_auth_service,
    get_bearer_token,
    get_request_token,
)
from workspace_access.services import AuthService, LoginResult

router = APIRouter(prefix="/auth", tags=["auth"])


def _login_out(result: LoginResult) -> LoginOut:
    return LoginOut(
        token=result.token,
        user=UserOut.model_validate(result.user),
        session=SessionOut.model_validate(result.session),
        tenants=[TenantOut.model_validate(t) for t in result.tenants],
    )


@router.post("/login", response_model=LoginOut)
def login(payload: LoginIn, request: Request, service: AuthService = Depends(get_auth_service)) -> LoginOut:
    result = service.login(
        payload.email,
        payload.password,
        ip_address=client_address(request),
        user_agent=request.headers.get("user-agent"),
        device_fingerprint=payload.device_fingerprint,
    )
    return _login_out(result)


@router.post("/register", response_model=LoginOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterIn, request: Request, service: AuthService = Depends(get_auth_service)) -> LoginOut:
    result = service.register(
        payload.email,
        payload.password,
        payload.name,
        ip_address=client_address(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _login_out(result)


@router.get("/session", response_model=SessionStateOut)
def current_session(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> SessionStateOut:
    state = service.validate_session(token)
    return SessionStateOut(
        user=UserOut.model_validate(state.user),
        session=SessionOut.model_validate(state.session),
        tenants=[TenantOut.model_validate(t) for t in state.tenants],
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(token: str = Depends(get_request_token), service: AuthService = Depends(get_auth_service)) -> None:
    service.logout(token)


@router.get("/sessions", response_model=SessionListOut)
def list_sessions(
    context: AccessContext = Depends(get_access_context),
    service: AuthService = Depends(get_auth_service),
) -> SessionListOut:
    current_id, sessions = service.list_sessions(context)
    items = []
    for s in sessions:
        item = SessionListItemOut.model_validate(s)
        item.current = s.id == current_id
        items.append(item)
    return SessionListOut(sessions=items)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_session(
    session_id: int,
    context: AccessContext = Depends(get_access_context),
    service: AuthService = Depends(get_auth_service),
) -> None:
    service.revoke_session(context, session_id)


@router.post("/logout-all", response_model=RevokedOut)
def logout_all(
    context: AccessContext = Depends(get_access_context),
    service: AuthService = Depends(get_auth_service),
) -> RevokedOut:
    return RevokedOut(revoked=service.logout_all(context))


@router.post("/password", response_model=RevokedOut)
def change_password(
    payload: PasswordChangeIn,
    context: AccessContext = Depends(get_access_context),
    service: AuthService = Depends(get_auth_service),
) -> RevokedOut:
    return RevokedOut(revoked=service.change_password(context, payload.current_password, payload.new_password))


@router.post("/tenant", response_model=SessionOut)
def select_tenant(
    payload: SelectTenantIn,
    context: AccessContext = Depends(get_access_context),
    service: AuthService = Depends(get_auth_service),
) -> SessionOut:
    return SessionOut.model_validate(service.select_tenant(context, payload.tenant_id))
