"""
Policy Gateway
Wraps the external policy service: protection scope lookup, inline content
evaluation, offline (background) reporting and sensitivity label metadata.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from app.modules.governedchat.errors import LabelLookupError, PolicyEvaluationError, PolicyScopeError
from app.modules.governedchat.services.policy.payloads import (
    build_process_content_body,
    build_protection_scope_body,
    extract_action,
    parse_protection_scopes,
)
from app.modules.governedchat.services.policy.state import (
    DEFAULT_MODE,
    DOWNLOAD_TEXT,
    EVALUATE_OFFLINE,
    UPLOAD_TEXT,
    PolicyScopeEntry,
)
from app.services.background_tasks import schedule_task
from core.config import Settings
from core.utils.perf import profile_stage

logger = logging.getLogger(__name__)

RESTRICT_ACCESS = "restrictAccess"
SCOPE_MODIFIED = "modified"


@dataclass(frozen=True)
class ContentDecision:
    action: str = DEFAULT_MODE
    scope_state: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.action == RESTRICT_ACCESS

    @property
    def scope_modified(self) -> bool:
        return self.scope_state == SCOPE_MODIFIED


@dataclass
class EvaluationResult:
    decision: ContentDecision
    raw_response: Dict[str, Any] = field(default_factory=dict)
    etag: Optional[str] = None


class PolicyGateway:
    def __init__(self, config: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = http_client or httpx.AsyncClient(timeout=config.POLICY_API_TIMEOUT_SECS)
        self._base = config.PURVIEW_API_BASE_URL.rstrip("/")

    @property
    def app_id(self) -> str:
        return self.config.AZURE_AD_API_ID

    @staticmethod
    def _auth(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    @profile_stage("policy_scope")
    async def get_scope(self, access_token: str) -> PolicyScopeEntry:
        """Call the scope API and reduce it to an etag + activity execution map."""
        url = f"{self._base}/v1.0/me/dataSecurityAndGovernance/protectionScopes/compute"
        try:
            response = await self._client.post(
                url, headers=self._auth(access_token), json=build_protection_scope_body(self.app_id)
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PolicyScopeError(f"Protection scope lookup failed: {e}") from e
        etag = response.headers.get("etag") or DEFAULT_MODE

        try:
            activity_execution_map, app_id_found = parse_protection_scopes(response.json(), self.app_id)
        except (PolicyScopeError, ValueError) as e:
            logger.error(f"Protection scope response unusable, using default modes: {e}")
            return PolicyScopeEntry(etag=etag, activity_execution_map={})

        if not app_id_found:
            logger.error("The policy API returned a different value for the app ID. This is not expected.")
        logger.debug(f"Protection scope response: {response.text}")
        return PolicyScopeEntry(etag=etag, activity_execution_map=activity_execution_map)

    @profile_stage("policy_evaluate")
    async def evaluate_content(self, access_token: str, etag: str, body: Dict[str, Any]) -> EvaluationResult:
        url = f"{self._base}/v1.0/me/dataSecurityAndGovernance/processContent"
        headers = {**self._auth(access_token), "If-None-Match": etag}
        try:
            response = await self._client.post(url, headers=headers, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise PolicyEvaluationError(f"Content evaluation failed: {e}") from e
        except ValueError as e:
            raise PolicyEvaluationError("Content evaluation returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise PolicyEvaluationError("Content evaluation returned an unexpected body")

        decision = ContentDecision(
            action=extract_action(payload),
            scope_state=payload.get("protectionScopeState"),
        )
        logger.debug(f"Content evaluation response: {payload}")
        return EvaluationResult(decision=decision, raw_response=payload, etag=response.headers.get("etag"))

    async def _report_offline(self, access_token: str, etag: str, evaluations: List[Tuple[str, Dict[str, Any]]]) -> None:
        for activity, body in evaluations:
            try:
                result = await self.evaluate_content(access_token, etag, body)
                logger.info(f"Offline evaluation for {activity}: action={result.decision.action}")
            except PolicyEvaluationError as e:
                logger.error(f"Offline evaluation for {activity} failed: {e}")

    def enqueue_offline(
        self,
        access_token: str,
        etag: str,
        upload_mode: str,
        download_mode: str,
        prompt: str,
        response_text: str,
        session_id: str,
        sequence: int,
    ) -> str:
        """
        Report prompt and/or response in the background; returns a status for logging.

        The prompt uses ``sequence`` and the response ``sequence + 1``.
        """
        evaluations: List[Tuple[str, Dict[str, Any]]] = []
        if upload_mode == EVALUATE_OFFLINE:
            evaluations.append((UPLOAD_TEXT, self.process_content_body(prompt, sequence, session_id, UPLOAD_TEXT)))
        if download_mode == EVALUATE_OFFLINE:
            evaluations.append((DOWNLOAD_TEXT, self.process_content_body(response_text, sequence + 1, session_id, DOWNLOAD_TEXT)))
        if not evaluations:
            return "skipped"

        schedule_task(
            self._report_offline(access_token, etag, evaluations),
            name=f"offline-evaluation:{session_id}",
        )
        return "queued:" + ",".join(activity for activity, _ in evaluations)

    def process_content_body(self, text: str, sequence: int, session_id: str, activity: str) -> Dict[str, Any]:
        return build_process_content_body(
            text,
            self.config.PURVIEW_APP_NAME,
            sequence,
            session_id,
            activity,
            self.app_id,
            self.config.PURVIEW_APP_VERSION,
        )

    async def get_label_info(self, app_token: str, user_name: str, label_id: str) -> Dict[str, Any]:
        url = (
            f"{self._base}/beta/users/{quote(user_name, safe='@')}"
            f"/security/dataSecurityAndGovernance/sensitivityLabels/{quote(label_id)}/rights"
        )
        try:
            response = await self._client.get(url, headers=self._auth(app_token))
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise LabelLookupError(label_id, str(e)) from e
        except ValueError as e:
            raise LabelLookupError(label_id, "invalid JSON") from e

    async def aclose(self) -> None:
        await self._client.aclose()
