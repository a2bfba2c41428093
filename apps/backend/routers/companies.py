"""
Companies Router
================
Company records and their aggregated company-level data.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from dependencies import get_current_user
from exceptions import CompanyNotFoundError
from schemas import (
    AggregatedCompanyDataResponse,
    CompanyCreate,
    CompanyResponse,
    CompanyUpdate,
)
from services.company_service import CompanyService

router = APIRouter()


@router.post("", status_code=201, response_model=CompanyResponse)
async def create_company(request: CompanyCreate, user_id: str = Depends(get_current_user)):
    """Create a company; the caller handles it unless handler_id is given."""
    async with CompanyService() as companies:
        company = await companies.create_company(
            request.name,
            handler_id=request.handler_id or user_id,
            data=request.data,
        )
    return CompanyResponse.model_validate(company)


@router.get("", response_model=List[CompanyResponse])
async def list_companies(
    handler_id: Optional[str] = None,
    user_id: str = Depends(get_current_user),
):
    async with CompanyService() as companies:
        result = await companies.list_companies(handler_id=handler_id)
    return [CompanyResponse.model_validate(company) for company in result]


@router.get("/search", response_model=List[CompanyResponse])
async def search_companies(
    q: str = Query(..., min_length=1, description="Company name to search for"),
    user_id: str = Depends(get_current_user),
):
    """Companies with a similar name, most relevant first."""
    async with CompanyService() as companies:
        result = await companies.search(q)
    return [CompanyResponse.model_validate(company) for company in result]


@router.get("/{company_id}", response_model=CompanyResponse)
async def get_company(company_id: UUID, user_id: str = Depends(get_current_user)):
    async with CompanyService() as companies:
        company = await companies.require_company(company_id)
    return CompanyResponse.model_validate(company)


@router.put("/{company_id}", response_model=CompanyResponse)
async def update_company(
    company_id: UUID,
    request: CompanyUpdate,
    user_id: str = Depends(get_current_user),
):
    async with CompanyService() as companies:
        company = await companies.update_company(
            company_id,
            name=request.name,
            data=request.data,
            handler_id=request.handler_id,
        )
    return CompanyResponse.model_validate(company)


@router.delete("/{company_id}", status_code=204)
async def delete_company(company_id: UUID, user_id: str = Depends(get_current_user)):
    """Delete a company; its documents stay and are unlinked."""
    async with CompanyService() as companies:
        deleted = await companies.delete_company(company_id)
    if not deleted:
        raise CompanyNotFoundError(company_id)
    return Response(status_code=204)


@router.get("/{company_id}/aggregated", response_model=AggregatedCompanyDataResponse)
async def get_aggregated_company_data(company_id: UUID, user_id: str = Depends(get_current_user)):
    """Company-level values collected from every linked document (not stored)."""
    async with CompanyService() as companies:
        data, document_count = await companies.aggregate_company_data(company_id)
    return AggregatedCompanyDataResponse(
        company_id=company_id,
        data=data,
        document_count=document_count,
    )


@router.post("/{company_id}/populate", response_model=CompanyResponse)
async def populate_company_data(company_id: UUID, user_id: str = Depends(get_current_user)):
    """Merge the aggregated document values into the stored company data."""
    async with CompanyService() as companies:
        await companies.populate_company_data(company_id)
        company = await companies.require_company(company_id)
    return CompanyResponse.model_validate(company)
