"""Portal login endpoints.

The portal login is completed by a human in the shared browser session;
these endpoints open that session, show it, and confirm the result.
"""

import base64
import logging

from fastapi import APIRouter, HTTPException

from vahan_extractor.api.deps import BrowserSessionDep, OrchestratorDep
from vahan_extractor.services.session_manager import AuthState, SessionUnavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/status")
async def auth_status(browser_session: BrowserSessionDep) -> dict:
    """Report whether the browser is open and logged in to the portal."""
    state = await browser_session.probe_auth()
    return {
        "browser_open": browser_session.is_live(),
        "auth_state": state.value,
        "authenticated": state is AuthState.AUTHENTICATED,
    }


@router.post("/init-browser")
async def init_browser(browser_session: BrowserSessionDep) -> dict:
    """Open the browser on the portal so the user can log in."""
    try:
        page = await browser_session.acquire()
    except SessionUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e))

    return {"status": "ready", "url": page.url}


@router.get("/screenshot")
async def screenshot(browser_session: BrowserSessionDep) -> dict:
    """Capture the current browser page as a base64 PNG."""
    try:
        image = await browser_session.capture_screenshot()
    except SessionUnavailable as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "image": base64.b64encode(image).decode("ascii"),
        "url": browser_session.page.url,
    }


@router.post("/confirm-login")
async def confirm_login(browser_session: BrowserSessionDep) -> dict:
    """Check whether the user's portal login succeeded."""
    if not browser_session.is_live():
        raise HTTPException(status_code=400, detail="Browser is not open")

    authenticated = await browser_session.check_authenticated()
    logger.info(f"Login confirmation: authenticated={authenticated}")
    return {"authenticated": authenticated}


@router.post("/close-browser")
async def close_browser(
    browser_session: BrowserSessionDep,
    orchestrator: OrchestratorDep,
) -> dict:
    """Close the shared browser session."""
    if orchestrator.active_job_id is not None:
        raise HTTPException(
            status_code=409,
            detail=f"Job {orchestrator.active_job_id} is using the browser",
        )

    await browser_session.release()
    return {"status": "closed"}
