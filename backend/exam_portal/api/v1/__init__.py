"""Exam Portal - API v1 Router."""
from fastapi import APIRouter

from exam_portal.api.v1.exams import router as exams_router
from exam_portal.api.v1.submissions import router as submissions_router

api_router = APIRouter()

api_router.include_router(exams_router)
api_router.include_router(submissions_router)
