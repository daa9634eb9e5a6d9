"""Validate and repair diagnosis codes against the Directory's code registry."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, MutableMapping
from dataclasses import dataclass

from directorysync.converters import convert_diagnosis, normalize_icd10

logger = logging.getLogger(__name__)

CorrectionMap = dict[str, str | None]


class CodeValidator(ABC):
    """Collaborator that knows which diagnosis codes the registry accepts."""

    @abstractmethod
    def is_valid_code(self, code: str) -> bool:
        """Return True if ``code`` (MIRIAM form) is a known disease type."""

    def normalize(self, code: str) -> str:
        """Normalize a raw code to WHO ICD-10 notation."""

        return normalize_icd10(code)


@dataclass
class CorrectionReport:
    """Counters describing what happened to each distinct diagnosis code."""

    total: int = 0
    null_seed: int = 0
    invalid: int = 0
    corrected: int = 0
    discarded: int = 0
    validator_calls: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "null_seed": self.null_seed,
            "invalid": self.invalid,
            "corrected": self.corrected,
            "discarded": self.discarded,
            "validator_calls": self.validator_calls,
        }


def category_of(code: str) -> str:
    """Cut a code at its first ``.`` (``urn:miriam:icd:C50.1`` -> ``urn:miriam:icd:C50``)."""

    return code.split(".", 1)[0]


class DiagnosisCodeCorrector:
    """Build a correction map from raw diagnosis codes to registry-valid codes.

    Validity answers are memoized in ``validity_cache``, which the caller may
    own and share between runs. A validator that raises is treated as having
    answered "invalid" for that code, so the fallback chain continues.
    """

    def __init__(
        self,
        validator: CodeValidator,
        validity_cache: MutableMapping[str, bool] | None = None,
    ) -> None:
        self.validator = validator
        self.validity_cache: MutableMapping[str, bool] = (
            validity_cache if validity_cache is not None else {}
        )
        self.report = CorrectionReport()

    def correct(self, codes: Iterable[str | None]) -> CorrectionMap:
        """Return a map covering every distinct code in ``codes`` exactly once."""

        self.report = CorrectionReport()
        corrections: CorrectionMap = {}

        for code in codes:
            if code is None or code in corrections:
                continue
            corrections[code] = self._correct_one(code)
            self.report.total += 1

        logger.info(
            "Diagnosis corrections: total=%d null_seed=%d invalid=%d corrected=%d discarded=%d",
            self.report.total,
            self.report.null_seed,
            self.report.invalid,
            self.report.corrected,
            self.report.discarded,
        )
        if not corrections:
            logger.warning("No diagnosis corrections generated")
        return corrections

    def _correct_one(self, code: str) -> str | None:
        seed = convert_diagnosis(code)
        if seed is None:
            self.report.null_seed += 1
            return None
        if self._is_valid(seed):
            return seed

        self.report.invalid += 1

        normalized = convert_diagnosis(self._normalize(code))
        candidates: list[str] = []
        if normalized is not None:
            candidates.extend([normalized, category_of(normalized)])
        candidates.append(category_of(seed))

        for candidate in candidates:
            if self._is_valid(candidate):
                logger.debug("Corrected diagnosis %s to %s", code, candidate)
                self.report.corrected += 1
                return candidate

        logger.warning("Diagnosis %s has no valid substitute, discarding", code)
        self.report.discarded += 1
        return None

    def _normalize(self, code: str) -> str:
        try:
            return self.validator.normalize(code)
        except Exception as exc:
            logger.warning("Normalizing diagnosis %s failed: %s", code, exc)
            return code

    def _is_valid(self, code: str) -> bool:
        if code in self.validity_cache:
            return self.validity_cache[code]

        self.report.validator_calls += 1
        try:
            valid = bool(self.validator.is_valid_code(code))
        except Exception as exc:
            logger.warning("Validity check for %s failed, treating as invalid: %s", code, exc)
            valid = False
        self.validity_cache[code] = valid
        return valid


def canonical_diagnosis(code: str | None, corrections: CorrectionMap | None) -> str | None:
    """Return the corrected registry code for ``code``.

    Codes the correction map does not cover fall back to their MIRIAM form.
    """

    if code is None:
        return None
    if corrections is not None and code in corrections:
        return corrections[code]
    return convert_diagnosis(code)
