"""
Company Service
===============
Company records and the company-level data shared across documents.
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update

from config import get_settings
from database import CompanyModel, DocumentModel
from exceptions import CompanyNotFoundError
from logging_config import get_logger
from metrics import company_data_merges_total
from services.base import DatabaseService, coerce_uuid
from services.company_matching import search_companies
from services.reconciliation import aggregate_company_data, merge_company_data

logger = get_logger(__name__)


class CompanyService(DatabaseService):
    """
    CRUD for companies plus aggregation of company-level data from the
    documents linked to them.

    Usage:
        async with CompanyService() as service:
            data = await service.populate_company_data(company_id)
    """

    async def create_company(
        self,
        name: str,
        handler_id: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> CompanyModel:
        company = CompanyModel(name=name.strip(), data=dict(data or {}), handler_id=handler_id)
        self.session.add(company)
        await self.session.flush()
        logger.info("Created company", company_id=str(company.id), name=company.name)
        return company

    async def get_company(self, company_id: Any) -> Optional[CompanyModel]:
        return await self.session.get(CompanyModel, coerce_uuid(company_id, "company_id"))

    async def require_company(self, company_id: Any) -> CompanyModel:
        company = await self.get_company(company_id)
        if company is None:
            raise CompanyNotFoundError(company_id)
        return company

    async def list_companies(self, handler_id: Optional[str] = None) -> List[CompanyModel]:
        stmt = select(CompanyModel)
        if handler_id is not None:
            stmt = stmt.where(CompanyModel.handler_id == handler_id)
        stmt = stmt.order_by(CompanyModel.name, CompanyModel.created_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update_company(
        self,
        company_id: Any,
        name: str,
        data: Dict[str, Any],
        handler_id: str,
    ) -> CompanyModel:
        """Replace name, data and handler of a company."""
        company = await self.require_company(company_id)
        company.name = name.strip()
        company.data = dict(data or {})
        company.handler_id = handler_id
        await self.session.flush()
        return company

    async def delete_company(self, company_id: Any) -> bool:
        """
        Delete a company and unlink its documents.

        Returns:
            True if the company existed.
        """
        company = await self.get_company(company_id)
        if company is None:
            return False

        # SQLite does not enforce ON DELETE SET NULL without the foreign_keys pragma
        await self.session.execute(
            update(DocumentModel)
            .where(DocumentModel.company_id == company.id)
            .values(company_id=None)
        )
        await self.session.delete(company)
        await self.session.flush()
        logger.info("Deleted company", company_id=str(company_id))
        return True

    async def search(
        self,
        search_term: str,
        threshold: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[CompanyModel]:
        """Companies with a name similar to `search_term`, most relevant first."""
        settings = get_settings()
        companies = await self.list_companies()
        return search_companies(
            companies,
            search_term,
            threshold=settings.company_search_threshold if threshold is None else threshold,
            limit=settings.company_search_limit if limit is None else limit,
        )

    async def aggregate_company_data(self, company_id: Any) -> Tuple[Dict[str, Any], int]:
        """
        Company-level data aggregated from every linked document.

        Returns:
            (aggregated data, number of documents considered)
        """
        company = await self.require_company(company_id)
        result = await self.session.execute(
            select(DocumentModel).where(DocumentModel.company_id == company.id)
        )
        documents = list(result.scalars().all())
        return aggregate_company_data(documents), len(documents)

    async def populate_company_data(self, company_id: Any) -> Dict[str, Any]:
        """Merge the aggregated document data into the stored company data."""
        company = await self.require_company(company_id)
        aggregated, document_count = await self.aggregate_company_data(company.id)

        company.data = merge_company_data(company.data, aggregated)
        await self.session.flush()
        company_data_merges_total.inc()

        logger.info(
            "Populated company data",
            company_id=str(company.id),
            document_count=document_count,
            keys=len(company.data),
        )
        return dict(company.data)
