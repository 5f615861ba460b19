"""
Notification Routes

GET /notifications - Own notifications, newest first (student only)
PUT /notifications/{notification_id}/read - Mark one as read (student only)
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List

from app.core.auth import get_current_student
from app.services.notification_service import get_notification_store
from app.schemas.schemas import MessageResponse, NotificationResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    student: dict = Depends(get_current_student)
):
    return get_notification_store().list_for_student(student["student_id"], limit=limit)


@router.put("/{notification_id}/read", response_model=MessageResponse)
def mark_notification_read(notification_id: str, student: dict = Depends(get_current_student)):
    if not get_notification_store().mark_read(student["student_id"], notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return MessageResponse(message="Notification marked as read")
