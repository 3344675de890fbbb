"""
Label Filter
Drops retrieved documents whose sensitivity label grants rights outside the
accepted set. Lookups run concurrently; a failed lookup removes only that
document.
"""

import asyncio
import logging
from typing import List, Optional

from app.modules.governedchat.errors import LabelLookupError
from app.modules.governedchat.services.policy.gateway import PolicyGateway
from app.modules.governedchat.services.policy.payloads import extract_rights_value
from app.modules.governedchat.services.retrieval.retriever import RetrievedDocument
from core.utils.perf import profile_stage

logger = logging.getLogger(__name__)


class LabelFilter:
    def __init__(self, gateway: PolicyGateway, accepted_access_rights: str):
        self.gateway = gateway
        self.accepted_access_rights = (accepted_access_rights or "default").lower()

    def is_accepted(self, rights_value: str) -> bool:
        # substring containment against the configured rights string
        return rights_value.lower() in self.accepted_access_rights

    async def _check(self, document: RetrievedDocument, app_token: str, user_name: str) -> Optional[RetrievedDocument]:
        if not document.label_id:
            return document
        try:
            label_info = await self.gateway.get_label_info(app_token, user_name, document.label_id)
        except LabelLookupError as e:
            logger.error(f"Label lookup failed, excluding {document.source}: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected label lookup failure for {document.label_id}, excluding {document.source}: {e}")
            return None

        if self.is_accepted(extract_rights_value(label_info)):
            logger.info(f"File accepted: {document.source} (label {document.label_id})")
            return document
        logger.info(f"File rejected: {document.source} (label {document.label_id})")
        return None

    @profile_stage("label_filter")
    async def filter(self, documents: List[RetrievedDocument], app_token: str, user_name: str) -> List[RetrievedDocument]:
        results = await asyncio.gather(*(self._check(d, app_token, user_name) for d in documents))
        return [d for d in results if d is not None]
