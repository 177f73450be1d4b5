"""
Supabase database client with CRUD operations.
Handles all database interactions for users, services, workshops and bookings.

Every state change on a booking is an optimistic check-and-set: the UPDATE
carries the columns the caller read (``expected``) as extra filters, and an
empty result means another request changed the row first.

Loyalty points are moved by a Postgres function so that the
read-modify-write happens inside one statement:
----------------------------
CREATE OR REPLACE FUNCTION adjust_loyalty_points(
    p_user_id uuid,
    p_delta integer,
    p_minimum_balance integer DEFAULT NULL,
    p_floor_at_zero boolean DEFAULT false
) RETURNS integer
LANGUAGE sql AS $$
    UPDATE users
       SET loyalty_points = CASE
               WHEN p_floor_at_zero THEN GREATEST(loyalty_points + p_delta, 0)
               ELSE loyalty_points + p_delta
           END
     WHERE id = p_user_id
       AND (p_minimum_balance IS NULL OR loyalty_points >= p_minimum_balance)
 RETURNING loyalty_points;
$$;

This client uses the service key which bypasses RLS; ownership checks are
done by the booking service before any write.
"""

import asyncio
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel
from supabase import Client as SupabaseClientType
from supabase import create_client

from config import settings
from models.booking import Booking, BookingStatus, PaymentMethod, PaymentStatus
from models.service import Service, ServiceReview
from models.user import User
from models.workshop import Workshop
from utils.constants import DEFAULT_WORKSHOP
from utils.datetime_utils import parse_iso_datetime, to_iso_string, utc_now
from utils.exceptions import DatabaseError

# Columns searched by the admin booking listing
ADMIN_SEARCH_COLUMNS = (
    "customer_name",
    "service_type",
    "bike_model",
    "pickup_address",
    "dropoff_address",
)

# Characters with meaning inside a PostgREST or=() filter
_FILTER_SPECIAL_CHARS = re.compile(r"[,()*%\\]")


def _serialize(value: Any) -> Any:
    """Convert a Python value into something the REST API accepts."""
    if isinstance(value, datetime):
        return to_iso_string(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return value


def _serialize_row(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _serialize(value) for key, value in data.items()}


class SupabaseClient:
    """
    Supabase database client wrapper.

    The supabase-py client is synchronous, so each ``execute()`` is run in a
    worker thread to keep the event loop free.
    """

    def __init__(self, client: Optional[SupabaseClientType] = None):
        self.client: SupabaseClientType = client or create_client(
            settings.supabase_url, settings.supabase_key
        )

    async def _execute(self, query: Any) -> Any:
        return await asyncio.to_thread(query.execute)

    # ========== User Operations ==========

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        try:
            response = await self._execute(
                self.client.table("users").select("*").eq("id", user_id)
            )

            if response.data:
                return User(**response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to get user: {e}") from e

    async def adjust_loyalty_points(
        self,
        user_id: str,
        delta: int,
        minimum_balance: Optional[int] = None,
        floor_at_zero: bool = False,
    ) -> Optional[int]:
        """
        Atomically add ``delta`` to a user's loyalty points.

        Args:
            user_id: User whose balance changes
            delta: Points to add (negative to subtract)
            minimum_balance: Only apply if the current balance is at least this
            floor_at_zero: Clamp the result at 0 instead of going negative

        Returns:
            The new balance, or None if the user is missing or the
            minimum balance was not met
        """
        try:
            response = await self._execute(
                self.client.rpc(
                    "adjust_loyalty_points",
                    {
                        "p_user_id": user_id,
                        "p_delta": delta,
                        "p_minimum_balance": minimum_balance,
                        "p_floor_at_zero": floor_at_zero,
                    },
                )
            )
        except Exception as e:
            raise DatabaseError(f"Failed to adjust loyalty points: {e}") from e

        data = response.data
        if isinstance(data, list):
            data = data[0] if data else None
        if isinstance(data, dict):
            data = data.get("adjust_loyalty_points", data.get("loyalty_points"))
        return int(data) if data is not None else None

    # ========== Service Operations ==========

    async def get_service_by_id(self, service_id: str) -> Optional[Service]:
        """Get service by ID."""
        try:
            response = await self._execute(
                self.client.table("services").select("*").eq("id", service_id)
            )

            if response.data:
                return Service(**response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to get service: {e}") from e

    async def add_service_review(
        self, service: Service, review: ServiceReview
    ) -> Service:
        """Append a review to a service and store the recomputed rating."""
        updated = service.with_review(review)
        try:
            response = await self._execute(
                self.client.table("services")
                .update(
                    _serialize_row(
                        {
                            "reviews": updated.reviews,
                            "rating": updated.rating,
                            "num_reviews": updated.num_reviews,
                        }
                    )
                )
                .eq("id", service.id)
            )
        except Exception as e:
            raise DatabaseError(f"Failed to add review: {e}") from e

        if not response.data:
            raise DatabaseError("Failed to add review: service no longer exists")
        return Service(**response.data[0])

    # ========== Workshop Operations ==========

    async def get_or_create_workshop(self) -> Workshop:
        """Get the workshop profile, creating the default one on first use."""
        try:
            response = await self._execute(
                self.client.table("workshops").select("*").limit(1)
            )
            if response.data:
                return Workshop(**response.data[0])

            data = dict(DEFAULT_WORKSHOP)
            data["pickup_dropoff_charge_per_km"] = settings.default_pickup_charge_per_km
            response = await self._execute(
                self.client.table("workshops").insert(data)
            )

            if not response.data:
                raise ValueError("Failed to create workshop: no data returned")

            return Workshop(**response.data[0])
        except Exception as e:
            raise DatabaseError(f"Failed to get workshop: {e}") from e

    # ========== Booking Operations ==========

    async def create_booking(self, booking: Booking) -> Booking:
        """Create a new booking."""
        try:
            data = _serialize_row(
                booking.model_dump(
                    exclude={"id", "created_at", "updated_at"}, exclude_none=True
                )
            )

            response = await self._execute(self.client.table("bookings").insert(data))

            if not response.data:
                raise ValueError("Failed to create booking: no data returned")

            return self._parse_booking(response.data[0])
        except Exception as e:
            raise DatabaseError(f"Failed to create booking: {e}") from e

    async def get_booking_by_id(self, booking_id: str) -> Optional[Booking]:
        """Get booking by ID."""
        try:
            response = await self._execute(
                self.client.table("bookings").select("*").eq("id", booking_id)
            )

            if response.data:
                return self._parse_booking(response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to get booking: {e}") from e

    async def update_booking(
        self,
        booking_id: str,
        data: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
        excluded: Optional[Dict[str, Any]] = None,
    ) -> Optional[Booking]:
        """
        Update a booking if it still matches ``expected``.

        Args:
            booking_id: Booking to update
            data: Columns to write
            expected: Column values the row must still have
            excluded: Column values the row must not have

        Returns:
            The updated booking, or None if the booking is missing or
            one of the conditions no longer holds
        """
        try:
            update_data = _serialize_row(data)
            update_data["updated_at"] = to_iso_string(utc_now())

            query = (
                self.client.table("bookings")
                .update(update_data)
                .eq("id", booking_id)
            )
            query = self._apply_expected(query, expected, excluded)

            response = await self._execute(query)

            if not response.data:
                return None

            return self._parse_booking(response.data[0])
        except Exception as e:
            raise DatabaseError(f"Failed to update booking: {e}") from e

    async def mark_booking_paid(
        self,
        booking_id: str,
        method: PaymentMethod,
        points: int,
        payment_reference: Optional[str] = None,
    ) -> Optional[Booking]:
        """
        Claim an unpaid booking as paid.

        Only one caller can win: the update is filtered on ``is_paid = false``
        and ``status <> 'Cancelled'`` (and on the gateway reference when one
        is given). Returns None for every caller that lost the race,
        including one racing an admin cancellation.
        """
        expected: Dict[str, Any] = {"is_paid": False}
        if payment_reference is not None:
            expected["payment_reference"] = payment_reference

        return await self.update_booking(
            booking_id,
            {
                "is_paid": True,
                "payment_status": PaymentStatus.PAID,
                "payment_method": method,
                "points_awarded": points,
            },
            expected=expected,
            excluded={"status": BookingStatus.CANCELLED},
        )

    async def delete_booking(
        self, booking_id: str, expected: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Delete a booking if it still matches ``expected``.

        Returns:
            True if a row was deleted, False otherwise
        """
        try:
            query = self.client.table("bookings").delete().eq("id", booking_id)
            query = self._apply_expected(query, expected)

            response = await self._execute(query)
            return len(response.data) > 0
        except Exception as e:
            raise DatabaseError(f"Failed to delete booking: {e}") from e

    async def get_bookings_by_customer(
        self, customer_id: str, page: int, limit: int
    ) -> Tuple[List[Booking], int]:
        """
        Get a page of a customer's bookings, newest first.

        Returns:
            (bookings on this page, total number of bookings)
        """
        offset = (page - 1) * limit
        try:
            response = await self._execute(
                self.client.table("bookings")
                .select("*", count="exact")
                .eq("customer_id", customer_id)
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1)
            )

            bookings = [self._parse_booking(item) for item in response.data]
            return bookings, response.count or 0
        except Exception as e:
            raise DatabaseError(f"Failed to get bookings: {e}") from e

    async def get_pending_bookings(self, customer_id: str) -> List[Booking]:
        """Get a customer's unpaid bookings that are not cancelled."""
        try:
            response = await self._execute(
                self.client.table("bookings")
                .select("*")
                .eq("customer_id", customer_id)
                .eq("payment_status", PaymentStatus.PENDING.value)
                .neq("status", BookingStatus.CANCELLED.value)
                .order("created_at", desc=True)
            )

            return [self._parse_booking(item) for item in response.data]
        except Exception as e:
            raise DatabaseError(f"Failed to get pending bookings: {e}") from e

    async def get_booking_history(self, customer_id: str) -> List[Booking]:
        """Get a customer's paid bookings."""
        try:
            response = await self._execute(
                self.client.table("bookings")
                .select("*")
                .eq("customer_id", customer_id)
                .eq("payment_status", PaymentStatus.PAID.value)
                .order("created_at", desc=True)
            )

            return [self._parse_booking(item) for item in response.data]
        except Exception as e:
            raise DatabaseError(f"Failed to get booking history: {e}") from e

    # ========== Admin Operations ==========

    async def get_admin_bookings(
        self, page: int, limit: int, search: str = ""
    ) -> Tuple[List[Booking], int]:
        """
        Get a page of non-archived bookings (admin operation).

        Args:
            page: 1-based page number
            limit: Page size
            search: Case-insensitive substring matched against customer
                name, service type, bike model and addresses

        Returns:
            (bookings on this page, total number of matching bookings)
        """
        offset = (page - 1) * limit
        try:
            query = (
                self.client.table("bookings")
                .select("*", count="exact")
                .eq("archived_by_admin", False)
            )

            term = _FILTER_SPECIAL_CHARS.sub(" ", search or "").strip()
            if term:
                query = query.or_(
                    ",".join(
                        f"{column}.ilike.*{term}*" for column in ADMIN_SEARCH_COLUMNS
                    )
                )

            response = await self._execute(
                query.order("created_at", desc=True).range(offset, offset + limit - 1)
            )

            bookings = [self._parse_booking(item) for item in response.data]
            return bookings, response.count or 0
        except Exception as e:
            raise DatabaseError(f"Failed to get admin bookings: {e}") from e

    # ========== Helper Methods ==========

    def _apply_expected(
        self,
        query: Any,
        expected: Optional[Dict[str, Any]],
        excluded: Optional[Dict[str, Any]] = None,
    ) -> Any:
        for column, value in (expected or {}).items():
            if value is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, _serialize(value))
        for column, value in (excluded or {}).items():
            query = query.neq(column, _serialize(value))
        return query

    def _parse_booking(self, item: dict) -> Booking:
        """
        Parse booking data from database response.

        Args:
            item: Raw booking data from database

        Returns:
            Parsed Booking object
        """
        item = item.copy()
        for field in ["date", "created_at", "updated_at"]:
            if isinstance(item.get(field), str):
                item[field] = parse_iso_datetime(item[field])
        return Booking(**item)


# Global database client instance
_db_client: Optional[SupabaseClient] = None


def get_db_client() -> SupabaseClient:
    """Get or create database client instance."""
    global _db_client
    if _db_client is None:
        _db_client = SupabaseClient()
    return _db_client
