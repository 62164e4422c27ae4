# routers/deps.py
from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from questhub.container.service_container import ServiceContainer, get_services
from questhub.core.errors import QuestError
from questhub.database import get_db
from questhub.services.orchestrator import QuestOrchestrator


def get_orchestrator(
    db: Session = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
) -> QuestOrchestrator:
    return QuestOrchestrator(db, services)


def http_error(err: QuestError) -> HTTPException:
    return HTTPException(status_code=err.http_status, detail=err.to_detail())
