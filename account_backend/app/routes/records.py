"""API routes of the bundled record store server."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, Body, HTTPException, status

from ..records import RecordCollection, RecordFileError, RecordNotFound
from ..services.records import get_record_file_store


router = APIRouter(prefix="/api", tags=["records"])


def _not_found(exc: RecordNotFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _write_failed(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


@router.get("/health")
def health() -> Dict[str, str]:
    return {
        "status": "OK",
        "message": "Record store is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/users/{user_id}")
def get_user(user_id: str) -> Dict[str, Any]:
    store = get_record_file_store()
    try:
        return store.get_user(user_id)
    except RecordNotFound as exc:
        raise _not_found(exc) from exc


@router.post("/users/{user_id}")
def save_user(user_id: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    store = get_record_file_store()
    try:
        user = store.save_user(user_id, payload)
    except RecordFileError as exc:
        raise _write_failed("Failed to save user data") from exc
    return {"message": "User data saved successfully", "user": user}


@router.get("/subscriptions/{user_id}")
def list_subscriptions(user_id: str) -> List[Dict[str, Any]]:
    return get_record_file_store().list_records(RecordCollection.SUBSCRIPTIONS, user_id)


@router.post("/subscriptions/{user_id}")
def add_subscription(user_id: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    store = get_record_file_store()
    try:
        subscription = store.add_record(RecordCollection.SUBSCRIPTIONS, user_id, payload, track_updates=True)
    except RecordFileError as exc:
        raise _write_failed("Failed to save subscription") from exc
    return {"message": "Subscription added successfully", "subscription": subscription}


@router.put("/subscriptions/{user_id}/{subscription_id}")
def update_subscription(
    user_id: str,
    subscription_id: str,
    payload: Dict[str, Any] = Body(...),
) -> Dict[str, Any]:
    store = get_record_file_store()
    try:
        subscription = store.update_record(RecordCollection.SUBSCRIPTIONS, user_id, subscription_id, payload)
    except RecordNotFound as exc:
        raise _not_found(exc) from exc
    except RecordFileError as exc:
        raise _write_failed("Failed to update subscription") from exc
    return {"message": "Subscription updated successfully", "subscription": subscription}


@router.get("/payments/{user_id}")
def list_payment_methods(user_id: str) -> List[Dict[str, Any]]:
    return get_record_file_store().list_records(RecordCollection.PAYMENTS, user_id)


@router.post("/payments/{user_id}")
def add_payment_method(user_id: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    store = get_record_file_store()
    try:
        payment = store.add_record(RecordCollection.PAYMENTS, user_id, payload)
    except RecordFileError as exc:
        raise _write_failed("Failed to save payment method") from exc
    return {"message": "Payment method added successfully", "payment": payment}


@router.put("/payments/{user_id}/{payment_id}")
def update_payment_method(
    user_id: str,
    payment_id: str,
    payload: Dict[str, Any] = Body(...),
) -> Dict[str, Any]:
    store = get_record_file_store()
    try:
        payment = store.update_record(RecordCollection.PAYMENTS, user_id, payment_id, payload)
    except RecordNotFound as exc:
        raise _not_found(exc) from exc
    except RecordFileError as exc:
        raise _write_failed("Failed to update payment method") from exc
    return {"message": "Payment method updated successfully", "payment": payment}


@router.delete("/payments/{user_id}/{payment_id}")
def remove_payment_method(user_id: str, payment_id: str) -> Dict[str, str]:
    store = get_record_file_store()
    try:
        store.remove_record(RecordCollection.PAYMENTS, user_id, payment_id)
    except RecordNotFound as exc:
        raise _not_found(exc) from exc
    except RecordFileError as exc:
        raise _write_failed("Failed to remove payment method") from exc
    return {"message": "Payment method removed successfully"}


@router.get("/billing/{user_id}")
def list_billing_records(user_id: str) -> List[Dict[str, Any]]:
    return get_record_file_store().list_records(RecordCollection.BILLING, user_id)


@router.post("/billing/{user_id}")
def add_billing_record(user_id: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    store = get_record_file_store()
    try:
        billing = store.add_record(RecordCollection.BILLING, user_id, payload, prepend=True)
    except RecordFileError as exc:
        raise _write_failed("Failed to save billing record") from exc
    return {"message": "Billing record added successfully", "billing": billing}


__all__ = ["router"]
