"""
Unit tests for Supabase database client.
Tests with mocked Supabase API calls.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from db.supabase_client import SupabaseClient
from models.booking import Booking, PaymentMethod
from models.service import Service, ServiceReview
from utils.exceptions import DatabaseError


def booking_row(**overrides) -> dict:
    row = {
        "id": "booking-1",
        "customer_id": "user-1",
        "customer_name": "Sita Sharma",
        "service_id": "svc-1",
        "service_type": "Full Servicing",
        "bike_model": "Honda Shine 125",
        "date": "2026-03-05T10:00:00Z",
        "total_cost": 1000,
        "final_amount": 1000,
        "status": "Pending",
        "payment_status": "Pending",
        "payment_method": "Not Selected",
        "is_paid": False,
        "created_at": "2026-03-01T08:30:00+00:00",
        "updated_at": "2026-03-01T08:30:00+00:00",
    }
    row.update(overrides)
    return row


@pytest.fixture
def supabase_client(mock_supabase_client):
    """Create SupabaseClient with mocked client."""
    mock_client, _ = mock_supabase_client
    with patch("db.supabase_client.create_client", return_value=mock_client):
        return SupabaseClient()


@pytest.mark.asyncio
async def test_get_user_by_id_found(supabase_client, mock_supabase_client):
    """Test getting user by ID when found."""
    mock_client, mock_table = mock_supabase_client
    mock_table.select.return_value.eq.return_value.execute.return_value = MagicMock(
        data=[{"id": "user-1", "full_name": "Sita Sharma", "loyalty_points": 120}]
    )

    user = await supabase_client.get_user_by_id("user-1")

    assert user.full_name == "Sita Sharma"
    assert user.loyalty_points == 120
    mock_client.table.assert_called_with("users")
    mock_table.select.return_value.eq.assert_called_with("id", "user-1")


@pytest.mark.asyncio
async def test_get_user_by_id_not_found(supabase_client, mock_supabase_client):
    """Test getting user by ID when not found."""
    _, mock_table = mock_supabase_client
    mock_table.select.return_value.eq.return_value.execute.return_value = MagicMock(data=[])

    assert await supabase_client.get_user_by_id("ghost") is None


@pytest.mark.asyncio
async def test_errors_are_wrapped(supabase_client, mock_supabase_client):
    """API failures surface as DatabaseError."""
    _, mock_table = mock_supabase_client
    mock_table.select.return_value.eq.return_value.execute.side_effect = Exception("timeout")

    with pytest.raises(DatabaseError, match="Failed to get booking"):
        await supabase_client.get_booking_by_id("booking-1")


@pytest.mark.asyncio
async def test_adjust_loyalty_points(supabase_client, mock_supabase_client):
    """Balance changes go through the adjust_loyalty_points function."""
    mock_client, _ = mock_supabase_client
    mock_client.rpc.return_value.execute.return_value = MagicMock(data=50)

    balance = await supabase_client.adjust_loyalty_points("user-1", -100, minimum_balance=100)

    assert balance == 50
    mock_client.rpc.assert_called_once_with(
        "adjust_loyalty_points",
        {
            "p_user_id": "user-1",
            "p_delta": -100,
            "p_minimum_balance": 100,
            "p_floor_at_zero": False,
        },
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data,expected",
    [(None, None), ([], None), ([{"adjust_loyalty_points": 7}], 7), ({"loyalty_points": 3}, 3)],
)
async def test_adjust_loyalty_points_result_shapes(
    supabase_client, mock_supabase_client, data, expected
):
    mock_client, _ = mock_supabase_client
    mock_client.rpc.return_value.execute.return_value = MagicMock(data=data)

    assert await supabase_client.adjust_loyalty_points("user-1", 5) == expected


@pytest.mark.asyncio
async def test_get_booking_parses_dates(supabase_client, mock_supabase_client):
    _, mock_table = mock_supabase_client
    mock_table.select.return_value.eq.return_value.execute.return_value = MagicMock(
        data=[booking_row()]
    )

    booking = await supabase_client.get_booking_by_id("booking-1")

    assert booking.date == datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc)
    assert booking.status == "Pending"


@pytest.mark.asyncio
async def test_create_booking(supabase_client, mock_supabase_client):
    """Test successful booking creation."""
    _, mock_table = mock_supabase_client
    mock_table.insert.return_value.execute.return_value = MagicMock(data=[booking_row()])

    booking = Booking(**{k: v for k, v in booking_row().items() if k not in ("id", "created_at", "updated_at")})
    result = await supabase_client.create_booking(booking)

    assert result.id == "booking-1"
    inserted = mock_table.insert.call_args[0][0]
    assert "id" not in inserted
    assert inserted["date"] == "2026-03-05T10:00:00+00:00"
    assert inserted["status"] == "Pending"


@pytest.mark.asyncio
async def test_update_booking_with_expected(supabase_client, mock_supabase_client):
    """Expected values become extra filters on the UPDATE."""
    _, mock_table = mock_supabase_client
    chain = mock_table.update.return_value.eq.return_value
    chain.eq.return_value.is_.return_value.execute.return_value = MagicMock(
        data=[booking_row(status="In Progress")]
    )

    result = await supabase_client.update_booking(
        "booking-1",
        {"status": "In Progress"},
        expected={"status": "Pending", "payment_reference": None},
    )

    assert result.status == "In Progress"
    written = mock_table.update.call_args[0][0]
    assert written["status"] == "In Progress"
    assert "updated_at" in written
    mock_table.update.return_value.eq.assert_called_with("id", "booking-1")
    chain.eq.assert_called_with("status", "Pending")
    chain.eq.return_value.is_.assert_called_with("payment_reference", "null")


@pytest.mark.asyncio
async def test_update_booking_lost_race(supabase_client, mock_supabase_client):
    _, mock_table = mock_supabase_client
    mock_table.update.return_value.eq.return_value.eq.return_value.execute.return_value = (
        MagicMock(data=[])
    )

    result = await supabase_client.update_booking(
        "booking-1", {"status": "In Progress"}, expected={"status": "Pending"}
    )

    assert result is None


@pytest.mark.asyncio
async def test_mark_booking_paid_filters_on_unpaid(supabase_client, mock_supabase_client):
    _, mock_table = mock_supabase_client
    chain = mock_table.update.return_value.eq.return_value
    chain.eq.return_value.neq.return_value.execute.return_value = MagicMock(
        data=[booking_row(is_paid=True, payment_status="Paid", payment_method="COD", points_awarded=15)]
    )

    result = await supabase_client.mark_booking_paid("booking-1", PaymentMethod.COD, 15)

    assert result.is_paid is True
    written = mock_table.update.call_args[0][0]
    assert written["is_paid"] is True
    assert written["payment_status"] == "Paid"
    assert written["payment_method"] == "COD"
    assert written["points_awarded"] == 15
    chain.eq.assert_called_with("is_paid", False)
    chain.eq.return_value.neq.assert_called_with("status", "Cancelled")


@pytest.mark.asyncio
async def test_delete_booking(supabase_client, mock_supabase_client):
    _, mock_table = mock_supabase_client
    chain = mock_table.delete.return_value.eq.return_value
    chain.eq.return_value.execute.return_value = MagicMock(data=[booking_row()])

    assert await supabase_client.delete_booking("booking-1", expected={"is_paid": False}) is True

    chain.eq.return_value.execute.return_value = MagicMock(data=[])
    assert await supabase_client.delete_booking("booking-1", expected={"is_paid": False}) is False


@pytest.mark.asyncio
async def test_get_bookings_by_customer(supabase_client, mock_supabase_client):
    _, mock_table = mock_supabase_client
    query = mock_table.select.return_value.eq.return_value.order.return_value
    query.range.return_value.execute.return_value = MagicMock(data=[booking_row()], count=23)

    bookings, total = await supabase_client.get_bookings_by_customer("user-1", 3, 11)

    assert len(bookings) == 1
    assert total == 23
    mock_table.select.assert_called_with("*", count="exact")
    query.range.assert_called_with(22, 32)


@pytest.mark.asyncio
async def test_get_admin_bookings_search(supabase_client, mock_supabase_client):
    _, mock_table = mock_supabase_client
    query = mock_table.select.return_value.eq.return_value
    query.or_.return_value.order.return_value.range.return_value.execute.return_value = (
        MagicMock(data=[booking_row(bike_model="Bajaj Pulsar")], count=1)
    )

    bookings, total = await supabase_client.get_admin_bookings(1, 12, "pul(sar")

    assert bookings[0].bike_model == "Bajaj Pulsar"
    assert total == 1
    mock_table.select.return_value.eq.assert_called_with("archived_by_admin", False)
    search_filter = query.or_.call_args[0][0]
    assert "bike_model.ilike.*pul sar*" in search_filter
    assert "customer_name.ilike.*pul sar*" in search_filter


@pytest.mark.asyncio
async def test_get_or_create_workshop_creates_default(supabase_client, mock_supabase_client):
    _, mock_table = mock_supabase_client
    mock_table.select.return_value.limit.return_value.execute.return_value = MagicMock(data=[])
    mock_table.insert.return_value.execute.return_value = MagicMock(
        data=[{"id": "ws-1", "workshop_name": "FixHub Nepal", "pickup_dropoff_charge_per_km": 50}]
    )

    workshop = await supabase_client.get_or_create_workshop()

    assert workshop.id == "ws-1"
    assert workshop.pickup_dropoff_charge_per_km == 50
    assert mock_table.insert.call_args[0][0]["workshop_name"] == "FixHub Nepal"


@pytest.mark.asyncio
async def test_add_service_review(supabase_client, mock_supabase_client):
    _, mock_table = mock_supabase_client
    service = Service(id="svc-1", name="Full Servicing", price=1000)
    review = ServiceReview(user_id="user-1", name="Sita", rating=4)
    mock_table.update.return_value.eq.return_value.execute.return_value = MagicMock(
        data=[
            {
                "id": "svc-1",
                "name": "Full Servicing",
                "price": 1000,
                "reviews": [{"user_id": "user-1", "name": "Sita", "rating": 4}],
                "rating": 4,
                "num_reviews": 1,
            }
        ]
    )

    updated = await supabase_client.add_service_review(service, review)

    assert updated.num_reviews == 1
    written = mock_table.update.call_args[0][0]
    assert written["rating"] == 4
    assert written["reviews"][0]["rating"] == 4
