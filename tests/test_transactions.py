import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.transaction import Transaction
from conftest import CUSTOMER, PAYMENT, make_client

OTHER_CUSTOMER = {
    "username": "bob_jones",
    "fullName": "Bob Jones",
    "idNumber": "ID654321",
    "accountNumber": "9876543210",
    "password": "An0ther!Passw0rd",
}


async def create_payment(client: AsyncClient, **overrides) -> dict:
    response = await client.post("/transactions", json={**PAYMENT, **overrides})
    assert response.status_code == 201, response.text
    return response.json()


# ===== POST /transactions =====

@pytest.mark.asyncio
async def test_create_transaction_success(
    customer_client: AsyncClient, registered_customer: dict, db_session: AsyncSession
):
    """A customer payment starts out pending."""
    response = await customer_client.post("/transactions", json=PAYMENT)

    assert response.status_code == 201
    data = response.json()
    assert data["amount"] == 150.25
    assert data["currency"] == "EUR"
    assert data["provider"] == "SWIFT"
    assert data["payeeName"] == "Hans Muller"
    assert data["payeeAccountNumber"] == "DE89370400440532013000"
    assert data["swiftCode"] == "DEUTDEFF"
    assert data["status"] == "pending"
    assert data["verifiedBy"] is None
    assert "createdAt" in data

    result = await db_session.execute(select(Transaction).where(Transaction.id == data["id"]))
    transaction = result.scalar_one()
    assert transaction.amount == 15025  # Stored as cents
    assert transaction.customer_id == registered_customer["id"]


@pytest.mark.asyncio
async def test_create_transaction_requires_auth(client: AsyncClient):
    response = await client.post("/transactions", json=PAYMENT)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_transaction_forbidden_for_employee(employee_client: AsyncClient):
    response = await employee_client.post("/transactions", json=PAYMENT)

    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [-10, 0, "12.345", "abc", "NaN", "1000000000.01"])
async def test_create_transaction_validates_amount(customer_client: AsyncClient, amount):
    response = await customer_client.post("/transactions", json={**PAYMENT, "amount": amount})

    assert response.status_code == 400
    assert any(d["field"] == "amount" for d in response.json()["details"])


@pytest.mark.asyncio
@pytest.mark.parametrize("currency", ["US", "USDD", "123", "us$", "XYZ"])
async def test_create_transaction_validates_currency(customer_client: AsyncClient, currency):
    response = await customer_client.post(
        "/transactions", json={**PAYMENT, "currency": currency}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_transaction_unsupported_currency_message(customer_client: AsyncClient):
    response = await customer_client.post("/transactions", json={**PAYMENT, "currency": "XYZ"})

    assert "Currency code not supported" in response.json()["details"][0]["message"]


@pytest.mark.asyncio
async def test_create_transaction_normalises_case(customer_client: AsyncClient):
    data = await create_payment(customer_client, currency="zar", swiftCode="deutdeff500")

    assert data["currency"] == "ZAR"
    assert data["swiftCode"] == "DEUTDEFF500"


@pytest.mark.asyncio
@pytest.mark.parametrize("swift_code", ["DEUT", "DEUTDEF", "1EUTDEFF", "DEUTDEFF50", "DEUTDEFF5000"])
async def test_create_transaction_validates_swift_code(customer_client: AsyncClient, swift_code):
    response = await customer_client.post(
        "/transactions", json={**PAYMENT, "swiftCode": swift_code}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "field,value",
    [
        ("payeeName", "Robert'); DROP TABLE--"),
        ("payeeName", "X"),
        ("payeeAccountNumber", "12345"),
        ("payeeAccountNumber", "DE89 3704"),
        ("provider", "PAYPAL"),
    ],
)
async def test_create_transaction_validates_payee(
    customer_client: AsyncClient, field: str, value: str
):
    response = await customer_client.post("/transactions", json={**PAYMENT, field: value})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_transaction_decimal_precision(
    customer_client: AsyncClient, db_session: AsyncSession
):
    data = await create_payment(customer_client, amount=99.99, currency="GBP")

    assert data["amount"] == 99.99
    result = await db_session.execute(select(Transaction.amount).where(Transaction.id == data["id"]))
    assert result.scalar_one() == 9999


# ===== GET /transactions/my =====

@pytest.mark.asyncio
async def test_list_my_transactions_empty(customer_client: AsyncClient):
    response = await customer_client.get("/transactions/my")

    assert response.status_code == 200
    data = response.json()
    assert data["items"] == []
    assert data["total"] == 0
    assert data["page"] == 1
    assert data["perPage"] == 10
    assert data["totalPages"] == 0


@pytest.mark.asyncio
async def test_list_my_transactions_newest_first(customer_client: AsyncClient):
    for amount in (10, 20, 30):
        await create_payment(customer_client, amount=amount)

    response = await customer_client.get("/transactions/my")

    data = response.json()
    assert data["total"] == 3
    assert [item["amount"] for item in data["items"]] == [30.0, 20.0, 10.0]


@pytest.mark.asyncio
async def test_list_my_transactions_pagination(customer_client: AsyncClient):
    for i in range(15):
        await create_payment(customer_client, amount=i + 1)

    response = await customer_client.get("/transactions/my?page=1&per_page=10")
    data = response.json()
    assert len(data["items"]) == 10
    assert data["total"] == 15
    assert data["totalPages"] == 2

    response = await customer_client.get("/transactions/my?page=2&per_page=10")
    data = response.json()
    assert len(data["items"]) == 5
    assert data["page"] == 2


@pytest.mark.asyncio
async def test_list_my_transactions_respects_max_per_page(customer_client: AsyncClient):
    response = await customer_client.get("/transactions/my?per_page=100")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_my_transactions_requires_auth(client: AsyncClient):
    response = await client.get("/transactions/my")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_my_transactions_forbidden_for_employee(employee_client: AsyncClient):
    response = await employee_client.get("/transactions/my")

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_my_transactions_data_isolation(customer_client: AsyncClient):
    """Customers only ever see their own payments."""
    await create_payment(customer_client, currency="USD")
    await create_payment(customer_client, currency="EUR")

    async with make_client() as other:
        assert (await other.post("/auth/register", json=OTHER_CUSTOMER)).status_code == 201
        await create_payment(other, currency="GBP")
        other_data = (await other.get("/transactions/my")).json()

    data = (await customer_client.get("/transactions/my")).json()
    assert data["total"] == 2
    assert {item["currency"] for item in data["items"]} == {"USD", "EUR"}
    assert other_data["total"] == 1
    assert other_data["items"][0]["currency"] == "GBP"


# ===== GET /transactions/pending =====

@pytest.mark.asyncio
async def test_pending_lists_all_customers(
    customer_client: AsyncClient, employee_client: AsyncClient
):
    await create_payment(customer_client)
    async with make_client() as other:
        await other.post("/auth/register", json=OTHER_CUSTOMER)
        await create_payment(other)

    response = await employee_client.get("/transactions/pending")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    usernames = {item["customer"]["username"] for item in data["items"]}
    assert usernames == {CUSTOMER["username"], OTHER_CUSTOMER["username"]}
    first = data["items"][0]["customer"]
    assert set(first) == {"username", "fullName", "accountNumber"}


@pytest.mark.asyncio
async def test_pending_status_filter(
    customer_client: AsyncClient, employee_client: AsyncClient
):
    first = await create_payment(customer_client)
    await create_payment(customer_client)
    await employee_client.post("/transactions/verify", json={"transactionId": first["id"]})

    pending = (await employee_client.get("/transactions/pending?status=pending")).json()
    verified = (await employee_client.get("/transactions/pending?status=verified")).json()
    both = (
        await employee_client.get("/transactions/pending?status=pending&status=verified")
    ).json()

    assert pending["total"] == 1
    assert verified["total"] == 1
    assert verified["items"][0]["id"] == first["id"]
    assert both["total"] == 2


@pytest.mark.asyncio
async def test_pending_rejects_unknown_status(employee_client: AsyncClient):
    response = await employee_client.get("/transactions/pending?status=approved")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_pending_forbidden_for_customer(customer_client: AsyncClient):
    response = await customer_client.get("/transactions/pending")

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_pending_requires_auth(client: AsyncClient):
    response = await client.get("/transactions/pending")

    assert response.status_code == 401


# ===== POST /transactions/verify =====

@pytest.mark.asyncio
async def test_verify_transaction(
    customer_client: AsyncClient, employee_client: AsyncClient, employee: dict
):
    created = await create_payment(customer_client)

    response = await employee_client.post(
        "/transactions/verify", json={"transactionId": created["id"]}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Transaction verified"
    assert data["transaction"]["status"] == "verified"
    assert data["transaction"]["verifiedBy"] == employee["id"]
    assert data["transaction"]["verifiedAt"] is not None

    mine = (await customer_client.get("/transactions/my")).json()
    assert mine["items"][0]["status"] == "verified"


@pytest.mark.asyncio
async def test_verify_twice_is_invalid_state(
    customer_client: AsyncClient, employee_client: AsyncClient
):
    created = await create_payment(customer_client)
    await employee_client.post("/transactions/verify", json={"transactionId": created["id"]})

    response = await employee_client.post(
        "/transactions/verify", json={"transactionId": created["id"]}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_state"


@pytest.mark.asyncio
async def test_verify_unknown_transaction(employee_client: AsyncClient):
    response = await employee_client.post("/transactions/verify", json={"transactionId": 999999})

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_verify_forbidden_for_customer(customer_client: AsyncClient):
    created = await create_payment(customer_client)

    response = await customer_client.post(
        "/transactions/verify", json={"transactionId": created["id"]}
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_verify_validates_body(employee_client: AsyncClient):
    response = await employee_client.post("/transactions/verify", json={"transactionId": 0})

    assert response.status_code == 400


# ===== POST /transactions/submit-to-swift =====

@pytest.mark.asyncio
async def test_submit_to_swift_only_submits_verified(
    customer_client: AsyncClient, employee_client: AsyncClient, db_session: AsyncSession
):
    """A mixed batch only moves the verified subset and reports that count."""
    verified_a = await create_payment(customer_client)
    verified_b = await create_payment(customer_client)
    pending = await create_payment(customer_client)
    for created in (verified_a, verified_b):
        await employee_client.post("/transactions/verify", json={"transactionId": created["id"]})

    response = await employee_client.post(
        "/transactions/submit-to-swift",
        json={"transactionIds": [verified_a["id"], verified_b["id"], pending["id"], 999999]},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["requestedCount"] == 4
    assert data["submittedCount"] == 2

    result = await db_session.execute(
        select(Transaction.id, Transaction.status).order_by(Transaction.id)
    )
    statuses = dict(result.all())
    assert statuses[verified_a["id"]] == "submitted"
    assert statuses[verified_b["id"]] == "submitted"
    assert statuses[pending["id"]] == "pending"


@pytest.mark.asyncio
async def test_submit_to_swift_deduplicates_ids(
    customer_client: AsyncClient, employee_client: AsyncClient
):
    created = await create_payment(customer_client)
    await employee_client.post("/transactions/verify", json={"transactionId": created["id"]})

    response = await employee_client.post(
        "/transactions/submit-to-swift",
        json={"transactionIds": [created["id"], created["id"]]},
    )

    data = response.json()
    assert data["requestedCount"] == 1
    assert data["submittedCount"] == 1


@pytest.mark.asyncio
async def test_submit_to_swift_requires_ids(employee_client: AsyncClient):
    response = await employee_client.post(
        "/transactions/submit-to-swift", json={"transactionIds": []}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_submit_to_swift_forbidden_for_customer(customer_client: AsyncClient):
    response = await customer_client.post(
        "/transactions/submit-to-swift", json={"transactionIds": [1]}
    )

    assert response.status_code == 403
