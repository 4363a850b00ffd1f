from typing import Any, Dict, Iterable, List, Optional
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession
from pymongo import DESCENDING, ReturnDocument
from app.core.exceptions import ConflictError
from app.models.request import PaymentRequest, RequestStatus
from app.repositories.base import BaseRepository, to_object_id

class RequestRepository(BaseRepository[PaymentRequest]):

    async def compare_and_set(
        self,
        request_id: str,
        expected_status: RequestStatus,
        expected_version: int,
        update_data: Dict[str, Any],
        session: AsyncIOMotorClientSession = None,
    ) -> PaymentRequest:
        """
        Conditional write: applies the update only if the stored status and
        version still match what the caller read, and bumps the version.
        Raises ConflictError when another writer got there first.
        """
        fields = self.to_mongo_fields(update_data)
        doc = await self.collection.find_one_and_update(
            {
                "_id": ObjectId(request_id),
                "status": RequestStatus(expected_status).value,
                "version": expected_version,
            },
            {"$set": fields, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if doc is None:
            current = await self.collection.find_one(
                {"_id": ObjectId(request_id)}, {"status": 1}, session=session
            )
            raise ConflictError(
                request_id,
                RequestStatus(expected_status).value,
                current.get("status") if current else None,
            )
        return self.model_cls.from_mongo(doc)

    async def get_many(self, request_ids: Iterable[str],
                       session: AsyncIOMotorClientSession = None) -> List[PaymentRequest]:
        """Fetch by ids, returned in the order given. Unknown ids are skipped."""
        ids = list(request_ids)
        oids = [oid for oid in (to_object_id(i) for i in ids) if oid is not None]
        cursor = self.collection.find({"_id": {"$in": oids}}, session=session)
        docs = await cursor.to_list(length=None)
        by_id = {str(doc["_id"]): self.model_cls.from_mongo(doc) for doc in docs}
        return [by_id[i] for i in ids if i in by_id]

    async def list_by_project(
        self,
        project_id: str,
        statuses: Optional[Iterable[RequestStatus]] = None,
        requester_uid: Optional[str] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[PaymentRequest]:
        """Newest first. limit=0 returns every match."""
        filter: Dict[str, Any] = {"projectId": project_id}
        if statuses is not None:
            filter["status"] = {"$in": [RequestStatus(s).value for s in statuses]}
        if requester_uid:
            filter["requestedBy.uid"] = requester_uid
        return await self.list(filter, skip=skip, limit=limit, sort=[("createdAt", DESCENDING)])
