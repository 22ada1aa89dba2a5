"""
AI Match Advisor

DESIGN DECISION: The advisor is strictly additive. The rule-based matcher
reconciles everything on its own; the advisor only proposes pairings the
rules could not settle and payee spellings while the user types.

CRITICAL BOUNDARIES:

1. MATCH PROPOSALS:
   - CAN: Suggest which manual entry a bank transaction settles
   - CANNOT: Touch the ledger. Proposals go through ingest_bank_batch,
     where the matcher re-checks account, date window and amount
   - CANNOT: Reference transactions it was not shown

2. PAYEE SUGGESTIONS:
   - CAN: Pick likely payees from the recent bank payees it was given
   - CANNOT: Invent payee names

FAILURE POLICY: Any transport error, timeout or unparseable response
yields an empty result. AdvisorUnavailable never leaves this module.

The LLM is a TRANSLATOR, not an ORACLE.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import google.generativeai as genai
import structlog
from pydantic import ValidationError as PydanticValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from register_engine.audit import AuditLogger
from register_engine.config import GeminiSettings, get_settings
from register_engine.models.ledger import MatchProposal, RawBankTransaction, Transaction


MAX_PAYEE_SUGGESTIONS = 3
DEFAULT_TIMEOUT_SECONDS = 20.0


class AdvisorUnavailable(Exception):
    """The completion service failed or answered with something unusable."""
    pass


# =============================================================================
# TRANSPORT
# =============================================================================

class CompletionTransport(ABC):
    """Plain-text prompt in, plain-text completion out."""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """
        Run one completion.

        Raises:
            AdvisorUnavailable: If the service cannot answer
        """
        pass


class GeminiCompletionTransport(CompletionTransport):
    """Completion transport backed by Google Gemini."""

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def complete(self, prompt: str) -> str:
        try:
            response = await self._model.generate_content_async(prompt)
            return response.text.strip()
        except Exception as e:
            raise AdvisorUnavailable(f"Gemini request failed: {e}") from e


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def extract_json_object(text: str) -> dict[str, Any]:
    """
    Pull the outermost JSON object out of a completion.

    Models often wrap JSON in prose or code fences, so everything outside
    the first "{" and the last "}" is ignored.

    Raises:
        AdvisorUnavailable: If no JSON object can be decoded
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise AdvisorUnavailable("Response contains no JSON object")
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise AdvisorUnavailable(f"Response is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise AdvisorUnavailable("Response JSON is not an object")
    return data


# =============================================================================
# ADVISOR
# =============================================================================

class MatchAdvisor:
    """
    Asks a text-completion service for match and payee suggestions.

    Side-effect-free with respect to the ledger: every method only
    returns suggestions.
    """

    def __init__(
        self,
        transport: Optional[CompletionTransport] = None,
        timeout_seconds: Optional[float] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Initialize the advisor.

        Args:
            transport: Completion service. None disables the advisor and
                every call returns an empty result.
            timeout_seconds: Upper bound per call
            audit_logger: Records fallbacks
        """
        self._transport = transport
        self._timeout = timeout_seconds or DEFAULT_TIMEOUT_SECONDS
        self._audit = audit_logger or AuditLogger()
        self._logger = structlog.get_logger("register_engine.advisor")

    @property
    def enabled(self) -> bool:
        return self._transport is not None

    async def _complete(self, prompt: str, operation: str) -> Optional[dict[str, Any]]:
        """Run a completion and decode it. Returns None on any failure."""
        if self._transport is None:
            return None
        try:
            text = await asyncio.wait_for(
                self._transport.complete(prompt),
                timeout=self._timeout,
            )
            return extract_json_object(text)
        except asyncio.TimeoutError:
            self._fallback(operation, "Advisor timed out")
        except Exception as e:
            self._fallback(operation, str(e))
        return None

    def _fallback(self, operation: str, reason: str) -> None:
        self._logger.warning("advisor_fallback", operation=operation, reason=reason)
        self._audit.log_advisor_fallback(operation, reason)

    # ---- match proposals -------------------------------------------------

    async def propose_matches(
        self,
        manual_batch: Sequence[Transaction],
        bank_batch: Sequence[RawBankTransaction],
    ) -> list[MatchProposal]:
        """
        Propose manual/bank pairings.

        Proposals that reference unknown ids or fail validation are
        dropped individually; an unusable response drops all of them.

        Returns:
            Proposals, highest confidence first (empty on any failure)
        """
        manual_batch = [m for m in manual_batch if m.is_manual and not m.is_opening_balance]
        if not manual_batch or not bank_batch:
            return []

        prompt = self._match_prompt(manual_batch, bank_batch)
        data = await self._complete(prompt, "propose_matches")
        if data is None:
            return []

        raw_matches = data.get("matches")
        if not isinstance(raw_matches, list):
            self._fallback("propose_matches", "Response has no 'matches' list")
            return []

        manual_ids = {str(m.id) for m in manual_batch}
        bank_ids = {b.external_transaction_id for b in bank_batch}

        proposals = []
        for item in raw_matches:
            if not isinstance(item, dict):
                continue
            try:
                proposal = MatchProposal(
                    manual_id=item.get("manual_id"),
                    bank_id=str(item.get("bank_id", "")),
                    confidence=item.get("confidence", 0),
                    reasoning=str(item.get("reasoning", "")),
                )
            except PydanticValidationError:
                continue
            if str(proposal.manual_id) in manual_ids and proposal.bank_id in bank_ids:
                proposals.append(proposal)

        proposals.sort(key=lambda p: p.confidence, reverse=True)
        return proposals

    async def find_matches_for_transaction(
        self,
        manual: Transaction,
        bank_batch: Sequence[RawBankTransaction],
    ) -> list[MatchProposal]:
        """Proposals for a single manual entry, highest confidence first."""
        proposals = await self.propose_matches([manual], bank_batch)
        return [p for p in proposals if p.manual_id == manual.id]

    def _match_prompt(
        self,
        manual_batch: Sequence[Transaction],
        bank_batch: Sequence[RawBankTransaction],
    ) -> str:
        manual_lines = "\n".join(
            f"- id={m.id} date={m.date.isoformat()} amount={m.amount:.2f} payee=\"{m.payee}\""
            for m in manual_batch
        )
        bank_lines = "\n".join(
            f"- id={b.external_transaction_id} date={b.date.isoformat()} "
            f"amount={b.amount:.2f} payee=\"{b.payee}\""
            for b in bank_batch
        )
        return f"""You are reconciling a personal check register against a bank feed.

Manual entries typed by the user:
{manual_lines}

Transactions reported by the bank:
{bank_lines}

Negative amounts are money out, positive amounts are money in.
Bank payee descriptors are often abbreviated or include store numbers
(for example "SHELL OIL #4521" for a manual entry "Gas Station").

Pair each bank transaction with the manual entry it most likely settles.
Only pair entries whose dates are within a few days and whose amounts are
equal or nearly equal. Each id may appear in at most one pair.
Leave out anything you are unsure about.

Respond with ONLY a JSON object in this exact format:
{{"matches": [{{"manual_id": "...", "bank_id": "...", "confidence": 85, "reasoning": "brief explanation"}}]}}

confidence is an integer from 0 to 100. Use an empty list if nothing matches."""

    # ---- payee suggestions -----------------------------------------------

    async def suggest_payee(
        self,
        entered_text: str,
        recent_bank_payees: Sequence[str],
    ) -> list[str]:
        """
        Suggest up to three payees for what the user is typing.

        Suggestions are restricted to `recent_bank_payees`, returned in
        their bank spelling.
        """
        entered_text = (entered_text or "").strip()
        known: dict[str, str] = {}
        for payee in recent_bank_payees:
            if payee and payee.strip():
                known.setdefault(payee.strip().lower(), payee.strip())
        if not entered_text or not known:
            return []

        payee_lines = "\n".join(f"- {p}" for p in known.values())
        prompt = f"""A user is typing a payee name into their check register.

They typed: "{entered_text}"

Payees recently seen on their bank statement:
{payee_lines}

Pick the payees from the list above the user most likely means, best first.
Choose at most {MAX_PAYEE_SUGGESTIONS}. Copy names exactly as listed. Never invent a payee.

Respond with ONLY a JSON object in this exact format:
{{"suggestions": ["payee one", "payee two"]}}"""

        data = await self._complete(prompt, "suggest_payee")
        if data is None:
            return []

        raw = data.get("suggestions")
        if not isinstance(raw, list):
            self._fallback("suggest_payee", "Response has no 'suggestions' list")
            return []

        suggestions: list[str] = []
        for item in raw:
            if not isinstance(item, str):
                continue
            canonical = known.get(item.strip().lower())
            if canonical and canonical not in suggestions:
                suggestions.append(canonical)
            if len(suggestions) == MAX_PAYEE_SUGGESTIONS:
                break
        return suggestions
