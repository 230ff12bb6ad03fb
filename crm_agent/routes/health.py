from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/")
def healthcheck(request: Request) -> Dict[str, Any]:
    runtime = request.app.state.runtime
    return {
        "status": "ok",
        "memory": "connected" if runtime.memory.is_available() else "fallback",
        "conversations": len(runtime.agent.states),
    }
