"""
Tests for the ticket settlement endpoints.
"""

from sqlalchemy import func, select

from token_ledger.main import app
from token_ledger.models import Ticket
from token_ledger.models.enums import LedgerDirection, LedgerReason, SubjectKind
from token_ledger.schemas.ledger import LedgerEntryCreate
from token_ledger.services.ledger_service import LedgerService
from token_ledger.services.notification_service import (
    NotificationDispatcher,
    get_dispatcher,
)


class TestCreateTicket:

    def test_create_ticket_debits_company(self, client, make_company, make_job_type):
        company = make_company(balance=50)
        job_type = make_job_type(token_cost=30)

        response = client.post("/tickets", json={
            "company_id": company.id,
            "title": "Landing page",
            "job_type_id": job_type.id,
        })

        assert response.status_code == 201
        data = response.json()
        assert data["tokens_debited"] == 30
        assert data["company_balance_after"] == 20
        assert data["ticket"]["status"] == "TODO"
        assert data["ticket"]["company_ticket_number"] == 1

    def test_insufficient_balance_returns_409(self, client, make_company, make_job_type):
        company = make_company(balance=20)
        job_type = make_job_type(token_cost=25)

        response = client.post("/tickets", json={
            "company_id": company.id,
            "title": "Landing page",
            "job_type_id": job_type.id,
        })

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["error_code"] == "ERR_INSUFFICIENT_BALANCE"
        assert detail["details"]["available_balance"] == 20
        assert detail["details"]["requested_amount"] == 25
        assert client.get(f"/companies/{company.id}").json()["token_balance"] == 20

    def test_quantity_out_of_range_returns_422(self, client, make_company, make_job_type):
        company = make_company(balance=50)
        response = client.post("/tickets", json={
            "company_id": company.id,
            "title": "Icons",
            "job_type_id": make_job_type().id,
            "quantity": 0,
        })
        assert response.status_code == 422


class TestCompleteTicket:

    def _ticket(self, client, company, job_type, designer):
        response = client.post("/tickets", json={
            "company_id": company.id,
            "title": "Brand refresh",
            "job_type_id": job_type.id,
            "designer_id": designer.id,
        })
        return response.json()["ticket"]["id"]

    def test_complete_pays_designer_and_notifies(
        self, client, notifications, make_company, make_job_type, make_designer
    ):
        designer = make_designer()
        ticket_id = self._ticket(
            client, make_company(balance=50), make_job_type(), designer
        )

        response = client.post(f"/tickets/{ticket_id}/complete")

        assert response.status_code == 200
        data = response.json()
        assert data["already_completed"] is False
        assert data["designer_balance_after"] == 4
        assert [n.event_type for n in notifications] == ["TICKET_COMPLETED"]
        assert notifications[0].user_id == designer.id

    def test_repeat_complete_is_a_no_op(
        self, client, notifications, make_company, make_job_type, make_designer
    ):
        designer = make_designer()
        ticket_id = self._ticket(
            client, make_company(balance=50), make_job_type(), designer
        )
        client.post(f"/tickets/{ticket_id}/complete")

        response = client.post(f"/tickets/{ticket_id}/complete")

        assert response.status_code == 200
        assert response.json()["already_completed"] is True
        assert len(notifications) == 1
        balance = client.get(f"/ledger/designers/{designer.id}/balance").json()
        assert balance["balance"] == 4

    def test_unknown_ticket_returns_404(self, client):
        response = client.post("/tickets/404/complete")
        assert response.status_code == 404

    def test_overrides_apply_to_debit_and_payout(
        self, client, make_company, make_job_type, make_designer
    ):
        designer = make_designer()
        company = make_company(balance=50)
        created = client.post("/tickets", json={
            "company_id": company.id,
            "title": "Rush job",
            "job_type_id": make_job_type(token_cost=10, designer_payout_tokens=4).id,
            "designer_id": designer.id,
            "quantity": 2,
            "token_cost_override": 15,
            "designer_payout_override": 9,
        }).json()
        assert created["tokens_debited"] == 15
        assert created["ticket"]["token_cost_override"] == 15

        response = client.post(f"/tickets/{created['ticket']['id']}/complete")

        assert response.json()["designer_balance_after"] == 9
        assert client.get(f"/companies/{company.id}").json()["token_balance"] == 35

    def test_failing_notification_does_not_undo_completion(
        self, client, make_company, make_job_type, make_designer
    ):
        def broken_sink(notification):
            raise RuntimeError("mail server down")

        app.dependency_overrides[get_dispatcher] = (
            lambda: NotificationDispatcher(sink=broken_sink)
        )
        designer = make_designer()
        ticket_id = self._ticket(
            client, make_company(balance=50), make_job_type(), designer
        )

        response = client.post(f"/tickets/{ticket_id}/complete")

        assert response.status_code == 200
        balance = client.get(f"/ledger/designers/{designer.id}/balance").json()
        assert balance["balance"] == 4
        entries = client.get(f"/ledger/tickets/{ticket_id}/entries").json()
        assert [e["reason"] for e in entries] == [
            "JOB_REQUEST_CREATED",
            "DESIGNER_JOB_PAYOUT",
        ]


class TestFailedCreate:

    def test_chain_break_returns_generic_500_and_writes_nothing(
        self, client, db_session, make_company, make_job_type
    ):
        company = make_company(balance=50)
        job_type = make_job_type(token_cost=30)
        # Cache says 50, the last entry says 60.
        LedgerService(db_session).append(LedgerEntryCreate(
            subject_kind=SubjectKind.COMPANY,
            company_id=company.id,
            direction=LedgerDirection.CREDIT,
            amount=10,
            reason=LedgerReason.ADMIN_ADJUSTMENT,
            metadata={"actor": "tests"},
            balance_before=50,
            balance_after=60,
        ))
        db_session.commit()

        response = client.post("/tickets", json={
            "company_id": company.id,
            "title": "Landing page",
            "job_type_id": job_type.id,
        })

        assert response.status_code == 500
        assert response.json() == {"detail": {
            "error_code": "ERR_INTERNAL",
            "message": "Internal ledger error",
        }}
        # The request session is discarded without a commit.
        db_session.rollback()
        ticket_count = db_session.execute(
            select(func.count()).select_from(Ticket)
        ).scalar()
        assert ticket_count == 0
        assert len(LedgerService(db_session).entries_for_company(company.id)) == 2
