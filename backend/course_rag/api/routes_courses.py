"""Course registry routes."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Response, status

from course_rag.api.dependencies import get_course_repository, get_ingest_pipeline
from course_rag.core.logging import get_logger
from course_rag.db.repositories import CourseRepository
from course_rag.ingest.pipeline import IngestPipeline
from course_rag.models.dto import CourseCreateRequest, CourseResponse, CourseUpdateRequest
from course_rag.models.entities import Course
from course_rag.utils.ids import new_id
from course_rag.utils.time import utc_now

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=list[CourseResponse], summary="List courses")
async def list_courses(courses: CourseRepository = Depends(get_course_repository)) -> list[CourseResponse]:
    return [_to_response(course) for course in courses.list()]


@router.get("/{course_id}", response_model=CourseResponse, summary="Fetch one course")
async def get_course(course_id: str, courses: CourseRepository = Depends(get_course_repository)) -> CourseResponse:
    course = courses.get(course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="Course not found")
    return _to_response(course)


@router.post("", response_model=CourseResponse, status_code=status.HTTP_201_CREATED, summary="Create a course")
async def create_course(
    request: CourseCreateRequest,
    courses: CourseRepository = Depends(get_course_repository),
) -> CourseResponse:
    course = Course(
        id=new_id(),
        name=request.name or "Untitled Course",
        description=request.description,
        color=request.color,
        icon=request.icon,
        metadata=request.metadata,
    )
    courses.insert(course)
    logger.info("Created course %s", course.id)
    return _to_response(course)


@router.put("/{course_id}", response_model=CourseResponse, summary="Update course details")
async def update_course(
    course_id: str,
    request: CourseUpdateRequest,
    courses: CourseRepository = Depends(get_course_repository),
) -> CourseResponse:
    course = courses.get(course_id)
    if course is None:
        raise HTTPException(status_code=404, detail="Course not found")
    for field_name, value in request.model_dump(exclude_none=True).items():
        setattr(course, field_name, value)
    course.updated_at = utc_now()
    courses.update(course)
    return _to_response(course)


@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a course and its material")
async def delete_course(course_id: str, pipeline: IngestPipeline = Depends(get_ingest_pipeline)) -> Response:
    if pipeline.courses.get(course_id) is None:
        raise HTTPException(status_code=404, detail="Course not found")
    await asyncio.to_thread(pipeline.delete_course, course_id)
    logger.info("Deleted course %s", course_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _to_response(course: Course) -> CourseResponse:
    return CourseResponse(
        id=course.id,
        name=course.name,
        description=course.description,
        color=course.color,
        icon=course.icon,
        metadata=course.metadata,
        file_count=course.file_count,
        embedding_count=course.embedding_count,
        created_at=course.created_at,
        updated_at=course.updated_at,
        last_accessed=course.last_accessed,
    )


__all__ = ["router"]
