from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Query, Response, status

from devfusion.dependencies import CurrentUser, ProjectServiceDep
from devfusion.exceptions import DevFusionError
from devfusion.models.api import (
    FileTreeUpdateRequest,
    JoinRequestDecision,
    ProjectCreateRequest,
    ProjectDetailResponse,
    ProjectListItem,
    ProjectListResponse,
    ProjectMessagesResponse,
    ProjectStatsResponse,
    ProjectUsersAddRequest,
    SearchResponse,
)
from devfusion.routes.errors import to_http_exception

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=ProjectDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreateRequest,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectDetailResponse:
    try:
        project = await service.create_project(payload.name, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectDetailResponse(project=project)


@router.get("", response_model=ProjectListResponse)
async def list_user_projects(
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectListResponse:
    """List all projects the current user belongs to."""
    projects = await service.list_user_projects(current_user)
    return ProjectListResponse(
        projects=[
            ProjectListItem(
                id=project.id,
                name=project.name,
                owner_id=project.owner_id,
                member_count=len(project.users),
                created_at=project.created_at,
                updated_at=project.updated_at,
            )
            for project in projects
        ]
    )


@router.get("/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project_id: str,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectDetailResponse:
    try:
        project = await service.get_project(project_id, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectDetailResponse(project=project)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> Response:
    try:
        await service.delete_project(project_id, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{project_id}/users", response_model=ProjectDetailResponse)
async def add_users(
    project_id: str,
    payload: ProjectUsersAddRequest,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectDetailResponse:
    try:
        project = await service.add_users(project_id, payload.users, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectDetailResponse(project=project)


@router.delete("/{project_id}/users/{user_id}", response_model=ProjectDetailResponse)
async def remove_user(
    project_id: str,
    user_id: str,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectDetailResponse:
    try:
        project = await service.remove_user(project_id, user_id, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectDetailResponse(project=project)


@router.post(
    "/{project_id}/join-requests",
    response_model=ProjectDetailResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_to_join(
    project_id: str,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectDetailResponse:
    try:
        project = await service.request_to_join(project_id, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectDetailResponse(project=project)


@router.put("/{project_id}/join-requests/{user_id}", response_model=ProjectDetailResponse)
async def decide_join_request(
    project_id: str,
    user_id: str,
    payload: JoinRequestDecision,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectDetailResponse:
    try:
        project = await service.decide_join_request(
            project_id,
            user_id,
            accept=payload.action == "accept",
            user=current_user,
        )
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectDetailResponse(project=project)


@router.put("/{project_id}/file-tree", response_model=ProjectDetailResponse)
async def replace_file_tree(
    project_id: str,
    payload: FileTreeUpdateRequest,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectDetailResponse:
    try:
        project = await service.replace_file_tree(project_id, payload.fileTree, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectDetailResponse(project=project)


@router.patch("/{project_id}/file-tree", response_model=ProjectDetailResponse)
async def patch_file_tree(
    project_id: str,
    payload: FileTreeUpdateRequest,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectDetailResponse:
    try:
        project = await service.patch_file_tree(project_id, payload.fileTree, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectDetailResponse(project=project)


@router.get("/{project_id}/messages", response_model=ProjectMessagesResponse, response_model_by_alias=True)
async def get_project_messages(
    project_id: str,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectMessagesResponse:
    try:
        messages = await service.list_messages(project_id, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectMessagesResponse(project_id=project_id, messages=messages)


@router.get("/{project_id}/stats", response_model=ProjectStatsResponse)
async def get_project_stats(
    project_id: str,
    service: ProjectServiceDep,
    current_user: CurrentUser,
) -> ProjectStatsResponse:
    try:
        stats = await service.get_stats(project_id, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return ProjectStatsResponse(stats=stats)


@router.get("/{project_id}/search", response_model=SearchResponse, response_model_by_alias=True)
async def search_project(
    project_id: str,
    service: ProjectServiceDep,
    current_user: CurrentUser,
    query: str | None = None,
    search_type: Literal["file", "chat", "all"] = Query(default="all", alias="type"),
    day: date | None = Query(default=None, alias="date"),
) -> SearchResponse:
    try:
        results = await service.search(
            project_id,
            current_user,
            query=query,
            search_type=search_type,
            day=day,
        )
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return SearchResponse(results=results)
