"""
Variable and secret reference API router.

Every endpoint works on one scope, ``/{level}/{owner_id}``, where ``level`` is
``project`` or ``pipeline``. Secret references never carry values.
"""

from collections.abc import Sequence

from fastapi import APIRouter, status

from stepflow.api.dependencies import ScopeDep, VariableServiceDep
from stepflow.models import (
    SecretReferenceCreate,
    SecretReferenceRead,
    VariableCreate,
    VariableRead,
    VariableUpdate,
)

router = APIRouter(
    prefix="/{level}/{owner_id}",
    responses={
        404: {"description": "Not found"},
        409: {"description": "Conflict"},
    },
)


# Variables


@router.get("/variables", response_model=list[VariableRead])
async def list_variables(scope: ScopeDep, service: VariableServiceDep) -> Sequence[VariableRead]:
    return await service.list_variables(scope)


@router.post("/variables", response_model=VariableRead, status_code=status.HTTP_201_CREATED)
async def create_variable(
    data: VariableCreate, scope: ScopeDep, service: VariableServiceDep
) -> VariableRead:
    """Declare a variable. Names are unique within a scope."""
    return await service.create_variable(scope, data)


@router.put("/variables", response_model=list[VariableRead])
async def replace_variables(
    data: list[VariableCreate], scope: ScopeDep, service: VariableServiceDep
) -> Sequence[VariableRead]:
    """Replace every variable of the scope."""
    return await service.replace_variables(scope, data)


@router.get("/variables/{name}", response_model=VariableRead)
async def get_variable(name: str, scope: ScopeDep, service: VariableServiceDep) -> VariableRead:
    return await service.get_variable(scope, name)


@router.patch("/variables/{name}", response_model=VariableRead)
async def update_variable(
    name: str, data: VariableUpdate, scope: ScopeDep, service: VariableServiceDep
) -> VariableRead:
    return await service.update_variable(scope, name, data)


@router.delete("/variables/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_variable(name: str, scope: ScopeDep, service: VariableServiceDep) -> None:
    await service.delete_variable(scope, name)


# Secret references


@router.get("/secrets", response_model=list[SecretReferenceRead])
async def list_secrets(
    scope: ScopeDep, service: VariableServiceDep
) -> Sequence[SecretReferenceRead]:
    return await service.list_secrets(scope)


@router.post("/secrets", response_model=SecretReferenceRead, status_code=status.HTTP_201_CREATED)
async def add_secret(
    data: SecretReferenceCreate, scope: ScopeDep, service: VariableServiceDep
) -> SecretReferenceRead:
    """Attach a vault secret to the scope under a display name."""
    return await service.add_secret(scope, data)


@router.put("/secrets", response_model=list[SecretReferenceRead])
async def replace_secrets(
    data: list[SecretReferenceCreate], scope: ScopeDep, service: VariableServiceDep
) -> Sequence[SecretReferenceRead]:
    return await service.replace_secrets(scope, data)


@router.delete("/secrets/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_secret(name: str, scope: ScopeDep, service: VariableServiceDep) -> None:
    await service.remove_secret(scope, name)
