"""Mini README: FastAPI JSON surface over the ledger service.

Structure:
    * create_application - application factory wiring routes to a LedgerService.
    * Request models - pydantic bodies for allocations, payments and status changes.
    * Ledger error handler - maps ``LedgerError`` subclasses to JSON responses.

Routes: financial summary, allocations, payment instructions (create, list,
status change, delete) and balances with their journal.

Amounts travel as strings (or numbers) and are converted to ``Money`` at the
boundary; responses render amounts as strings. The acting user is read from
the ``X-Actor-Id`` header and passed on explicitly.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from ..balances import BalanceTransactionType
from ..errors import LedgerError
from ..finance import PersonRef, PersonType
from ..logging_utils import get_logger
from ..payments import PaymentItemRequest
from ..service import LedgerService, build_demo_service
from ..storage import PaymentStatus

LOGGER = get_logger(__name__)


class PersonPayload(BaseModel):
    user_id: Optional[str] = None
    personnel_id: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_person(self) -> "PersonPayload":
        if bool(self.user_id) == bool(self.personnel_id):
            raise ValueError("Either user_id or personnel_id is required")
        return self

    def to_ref(self) -> PersonRef:
        return PersonRef.from_ids(self.user_id, self.personnel_id)


class AllocationRequest(PersonPayload):
    project_id: str
    amount: Decimal
    notes: Optional[str] = Field(None, max_length=1000)


class PaymentItemPayload(BaseModel):
    amount: Decimal = Field(..., gt=0)
    description: str = ""
    income_distribution_id: Optional[str] = None


class PaymentInstructionRequest(PersonPayload):
    total_amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=1000)
    items: List[PaymentItemPayload] = Field(..., min_length=1)


class StatusUpdateRequest(BaseModel):
    status: str


def create_application(service: Optional[LedgerService] = None) -> FastAPI:
    """Create the FastAPI application bound to ``service`` (demo data by default)."""

    app = FastAPI(title="TTO Ledger", version="0.1.0")
    ledger = service or build_demo_service()

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, error: LedgerError) -> JSONResponse:
        """Translate domain errors into their HTTP status and error code."""

        LOGGER.info("%s %s rejected: %s", request.method, request.url.path, error.code)
        return JSONResponse(status_code=error.http_status, content=error.as_dict())

    @app.get("/projects/{project_id}/financial-summary")
    def financial_summary(project_id: str) -> JSONResponse:
        overview = ledger.summarize_project(project_id)
        return JSONResponse(overview.as_dict())

    @app.post("/allocations", status_code=201)
    def create_allocation(
        payload: AllocationRequest,
        actor_id: str = Header(..., alias="X-Actor-Id"),
    ) -> JSONResponse:
        allocation = ledger.create_manual_allocation(
            payload.project_id,
            payload.to_ref(),
            payload.amount,
            payload.notes,
            actor_id,
        )
        return JSONResponse({"allocation": allocation.as_dict()}, status_code=201)

    @app.post("/payment-instructions", status_code=201)
    def create_payment_instruction(
        payload: PaymentInstructionRequest,
        actor_id: str = Header(..., alias="X-Actor-Id"),
    ) -> JSONResponse:
        items = [
            PaymentItemRequest(
                amount=item.amount,
                description=item.description,
                income_distribution_id=item.income_distribution_id,
            )
            for item in payload.items
        ]
        instruction = ledger.create_payment_instruction(
            payload.to_ref(),
            payload.total_amount,
            items,
            payload.notes,
            actor_id,
        )
        return JSONResponse({"payment": instruction.as_dict()}, status_code=201)

    @app.get("/payment-instructions")
    def list_payment_instructions(
        user_id: Optional[str] = Query(None),
        personnel_id: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
    ) -> JSONResponse:
        try:
            recipient = PersonRef.from_ids(user_id, personnel_id) if (user_id or personnel_id) else None
            wanted = PaymentStatus.from_str(status) if status else None
        except ValueError as error:
            return _validation_error(str(error))
        instructions = ledger.list_payment_instructions(recipient, wanted)
        return JSONResponse({"payments": [instruction.as_dict() for instruction in instructions]})

    @app.delete("/payment-instructions/{instruction_id}")
    def delete_payment_instruction(
        instruction_id: str,
        actor_id: str = Header(..., alias="X-Actor-Id"),
    ) -> JSONResponse:
        instruction = ledger.delete_payment_instruction(instruction_id, actor_id)
        return JSONResponse({"payment": instruction.as_dict()})

    @app.put("/payment-instructions/{instruction_id}/status")
    def update_payment_status(
        instruction_id: str,
        payload: StatusUpdateRequest,
        actor_id: str = Header(..., alias="X-Actor-Id"),
    ) -> JSONResponse:
        try:
            status = PaymentStatus.from_str(payload.status)
        except ValueError as error:
            return _validation_error(str(error))
        instruction = ledger.transition_payment_instruction(instruction_id, status, actor_id)
        return JSONResponse({"payment": instruction.as_dict()})

    @app.get("/balances/{person_type}/{person_id}")
    def get_balance(person_type: str, person_id: str) -> JSONResponse:
        person = _person_from_path(person_type, person_id)
        if person is None:
            return _validation_error(f"Unknown person type {person_type}")
        return JSONResponse({"balance": ledger.get_balance(person).as_dict()})

    @app.get("/balances/{person_type}/{person_id}/transactions")
    def list_transactions(
        person_type: str,
        person_id: str,
        kind: Optional[str] = Query(None, alias="type"),
    ) -> JSONResponse:
        person = _person_from_path(person_type, person_id)
        if person is None:
            return _validation_error(f"Unknown person type {person_type}")
        try:
            movement = BalanceTransactionType.from_str(kind) if kind else None
        except ValueError as error:
            return _validation_error(str(error))
        transactions = ledger.list_balance_transactions(person, movement)
        return JSONResponse({"transactions": [row.as_dict() for row in transactions]})

    return app


def _person_from_path(person_type: str, person_id: str) -> Optional[PersonRef]:
    try:
        return PersonRef(PersonType.from_str(person_type), person_id)
    except ValueError:
        return None


def _validation_error(message: str) -> JSONResponse:
    return JSONResponse({"error": "validation_error", "message": message}, status_code=422)
