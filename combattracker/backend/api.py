"""FastAPI endpoints for encounter management, host actions and websocket sync."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Literal

from fastapi import Depends, FastAPI, HTTPException, Query, Response, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field

from .clock import PREDEFINED_STATUS_EFFECTS
from .config import load_settings
from .encounter import CombatEncounter
from .engine import ACTION_TYPES
from .errors import ConcurrentModification, InvalidTransition, InvalidValue
from .state import encounter_from_state
from .store import EncounterStore, create_store

logger = logging.getLogger(__name__)

EncounterStatusFilter = Literal["preparing", "active", "paused", "completed"]


class CreateEncounterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    notes: str = ""
    environment_effects: list[str] = Field(default_factory=list)


class EncounterStateResponse(BaseModel):
    state: dict[str, Any]


class EncounterListResponse(BaseModel):
    encounters: list[dict[str, Any]]


class HostAction(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal[ACTION_TYPES]  # type: ignore[valid-type]


class ActionEnvelope(BaseModel):
    action: HostAction


class ActionResponse(BaseModel):
    state: dict[str, Any]
    events: list[dict[str, Any]]
    result: dict[str, Any] = Field(default_factory=dict)


class SummaryResponse(BaseModel):
    encounter_id: str
    summary: dict[str, Any]


class StatusEffectCatalogResponse(BaseModel):
    effects: list[dict[str, str]]


class EncounterWebSocketHub:
    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, encounter_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[encounter_id].add(websocket)

    def disconnect(self, encounter_id: str, websocket: WebSocket) -> None:
        connections = self._connections.get(encounter_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(encounter_id, None)

    async def send_state(self, websocket: WebSocket, state: dict[str, Any]) -> None:
        await websocket.send_json({"type": "state.full", "state": state})

    async def broadcast_state(self, encounter_id: str, state: dict[str, Any]) -> None:
        stale_connections: list[WebSocket] = []
        for websocket in list(self._connections.get(encounter_id, set())):
            try:
                await self.send_state(websocket, state)
            except RuntimeError:
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(encounter_id=encounter_id, websocket=websocket)


def _default_store() -> EncounterStore:
    return create_store(database_url=load_settings().database_url)


def create_app(store: EncounterStore | None = None) -> FastAPI:
    app = FastAPI(title="Combat Tracker API", version="0.3.0")
    encounter_store = store if store is not None else _default_store()
    websocket_hub = EncounterWebSocketHub()
    app.state.websocket_hub = websocket_hub

    async def publish_state(encounter_id: str, state: dict[str, Any]) -> None:
        await websocket_hub.broadcast_state(encounter_id=encounter_id, state=state)

    app.state.publish_state = publish_state

    def get_store() -> EncounterStore:
        return encounter_store

    @app.post("/api/campaigns/{campaign_id}/encounters", response_model=EncounterStateResponse, status_code=201)
    def create_encounter(
        campaign_id: str,
        payload: CreateEncounterRequest,
        local_store: EncounterStore = Depends(get_store),
    ) -> EncounterStateResponse:
        record = local_store.create_encounter(
            campaign_id=campaign_id,
            name=payload.name,
            description=payload.description,
            notes=payload.notes,
            environment_effects=payload.environment_effects,
        )
        return EncounterStateResponse(state=record.state)

    @app.get("/api/campaigns/{campaign_id}/encounters", response_model=EncounterListResponse)
    def list_encounters(
        campaign_id: str,
        status: EncounterStatusFilter | None = Query(default=None),
        local_store: EncounterStore = Depends(get_store),
    ) -> EncounterListResponse:
        records = local_store.list_encounters(campaign_id=campaign_id, status=status)
        return EncounterListResponse(encounters=[record.state for record in records])

    @app.get("/api/encounters/{encounter_id}", response_model=EncounterStateResponse)
    def get_encounter(
        encounter_id: str,
        local_store: EncounterStore = Depends(get_store),
    ) -> EncounterStateResponse:
        record = local_store.get_encounter_state(encounter_id=encounter_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Encounter not found")
        return EncounterStateResponse(state=record.state)

    @app.delete("/api/encounters/{encounter_id}", status_code=204)
    def delete_encounter(
        encounter_id: str,
        local_store: EncounterStore = Depends(get_store),
    ) -> Response:
        if not local_store.delete_encounter(encounter_id=encounter_id):
            raise HTTPException(status_code=404, detail="Encounter not found")
        return Response(status_code=204)

    @app.get("/api/encounters/{encounter_id}/summary", response_model=SummaryResponse)
    def get_summary(
        encounter_id: str,
        local_store: EncounterStore = Depends(get_store),
    ) -> SummaryResponse:
        record = local_store.get_encounter_state(encounter_id=encounter_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Encounter not found")
        encounter = CombatEncounter(encounter_from_state(record.state))
        return SummaryResponse(encounter_id=encounter_id, summary=encounter.get_summary().as_dict())

    @app.post("/api/encounters/{encounter_id}/actions", response_model=ActionResponse)
    async def post_action(
        encounter_id: str,
        payload: ActionEnvelope,
        local_store: EncounterStore = Depends(get_store),
    ) -> ActionResponse:
        action = payload.action.model_dump()
        try:
            outcome = local_store.apply_action(encounter_id=encounter_id, action=action)
        except (InvalidTransition, ConcurrentModification) as exc:
            logger.warning("Rejected %s on encounter %s: %s", action["type"], encounter_id, exc)
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except InvalidValue as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

        if outcome is None:
            raise HTTPException(status_code=404, detail="Encounter not found")
        if "notFound" in outcome.result:
            raise HTTPException(status_code=404, detail=f"{outcome.result['notFound']} not found")
        if not outcome.applied:
            return ActionResponse(state=outcome.state, events=[], result=outcome.result)

        await publish_state(encounter_id=encounter_id, state=outcome.state)
        return ActionResponse(state=outcome.state, events=outcome.engine_events, result=outcome.result)

    @app.get("/api/status-effects", response_model=StatusEffectCatalogResponse)
    def get_status_effects() -> StatusEffectCatalogResponse:
        return StatusEffectCatalogResponse(effects=[dict(effect) for effect in PREDEFINED_STATUS_EFFECTS])

    @app.websocket("/ws/encounters/{encounter_id}")
    async def encounter_ws(
        websocket: WebSocket,
        encounter_id: str,
        local_store: EncounterStore = Depends(get_store),
    ) -> None:
        record = local_store.get_encounter_state(encounter_id=encounter_id)
        if record is None:
            await websocket.close(code=1008)
            return

        await websocket_hub.connect(encounter_id=encounter_id, websocket=websocket)
        await websocket_hub.send_state(websocket=websocket, state=record.state)

        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            websocket_hub.disconnect(encounter_id=encounter_id, websocket=websocket)

    return app


app = create_app()
