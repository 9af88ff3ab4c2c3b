# anpr_pipeline/validation/validator.py
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Any, Optional
import logging

from ..models import ValidationMetadata, ValidationMode, ValidationResult
from .rules import ValidationRules, infer_vehicle_type, is_script_char, is_script_letter

FALLBACK_WARNINGS = (
    'Strict Bangla format not recognized',
    'Using demo fallback validation',
    'Production systems require strict format compliance',
)


@dataclass
class _PassOutcome:
    valid: bool
    reasons: List[str]
    warnings: List[str]
    metadata: Optional[ValidationMetadata] = None


class PlateValidator:
    """Checks plate text against the strict format, with an optional fallback pass"""

    def __init__(self,
                 rules: Optional[ValidationRules] = None,
                 fallback_enabled: bool = True,
                 logger: Optional[logging.Logger] = None):
        self.rules = rules or ValidationRules()
        self.fallback_enabled = fallback_enabled
        self.logger = logger or logging.getLogger(__name__)

        self._total = 0
        self._strict_passes = 0
        self._fallback_passes = 0
        self._failures = 0
        self._failure_reasons: Counter = Counter()

    @classmethod
    def from_config(cls, section: Dict[str, Any],
                    logger: Optional[logging.Logger] = None) -> 'PlateValidator':
        rules = ValidationRules()
        if section.get('regions'):
            rules.regions = list(section['regions'])
        if section.get('digits'):
            rules.digits = list(section['digits'])
        if section.get('series_categories'):
            rules.series_categories = dict(section['series_categories'])
        return cls(rules=rules,
                   fallback_enabled=section.get('fallback_enabled', True),
                   logger=logger)

    def validate_plate(self, plate: str) -> ValidationResult:
        """Validate one plate text: strict pass first, then fallback if enabled"""
        self._total += 1

        if not plate or not plate.strip():
            self.logger.warning("Empty plate validation", extra={'data': {'plate': plate}})
            return self._fail(plate or '', ['Empty or null plate text'], [])

        strict = self._validate_strict(plate)
        if strict.valid:
            self._strict_passes += 1
            self.logger.info(
                f"Strict validation passed for {plate!r}",
                extra={'data': {'plate': plate, 'metadata': strict.metadata.__dict__}}
            )
            return ValidationResult(
                valid=True,
                mode=ValidationMode.STRICT,
                plate=plate,
                reasons=('Valid Bangla plate format',),
                metadata=strict.metadata
            )

        if self.fallback_enabled:
            fallback = self._validate_fallback(plate)
            if fallback.valid:
                self._fallback_passes += 1
                self.logger.info(
                    f"Fallback validation passed for {plate!r}",
                    extra={'data': {'plate': plate, 'reasons': fallback.reasons}}
                )
                return ValidationResult(
                    valid=True,
                    mode=ValidationMode.FALLBACK,
                    plate=plate,
                    reasons=tuple(fallback.reasons),
                    warnings=FALLBACK_WARNINGS + tuple(fallback.warnings),
                    metadata=fallback.metadata
                )

        self.logger.warning(
            f"Validation failed for {plate!r}",
            extra={'data': {'plate': plate, 'reasons': strict.reasons}}
        )
        return self._fail(plate, strict.reasons, ['Plate format does not match Bangla standards'])

    def _fail(self, plate: str, reasons: List[str], warnings: List[str]) -> ValidationResult:
        self._failures += 1
        self._failure_reasons.update(reasons)
        return ValidationResult(
            valid=False,
            mode=ValidationMode.STRICT,
            plate=plate,
            reasons=tuple(reasons),
            warnings=tuple(warnings)
        )

    def _validate_strict(self, plate: str) -> _PassOutcome:
        """Region-Series-Digits, e.g. ঢাকা-সখী-১২৩৪"""
        reasons: List[str] = []

        parts = plate.split('-')
        if len(parts) != 3:
            reasons.append(f"Expected 3 parts separated by hyphens, got {len(parts)}")
            return _PassOutcome(valid=False, reasons=reasons, warnings=[])

        region, series, digits = parts

        if region not in self.rules.regions:
            reasons.append(f"Invalid region: {region}")

        if not 2 <= len(series) <= 4:
            reasons.append(f"Letters part should be 2-4 characters, got {len(series)}")
        else:
            for char in series:
                if not is_script_letter(char):
                    reasons.append(f"Invalid letter character: {char}")
                    break

        if not 3 <= len(digits) <= 4:
            reasons.append(f"Digits part should be 3-4 characters, got {len(digits)}")
        else:
            for char in digits:
                if char not in self.rules.digits:
                    reasons.append(f"Invalid digit character: {char}")
                    break

        if reasons:
            return _PassOutcome(valid=False, reasons=reasons, warnings=[])

        return _PassOutcome(
            valid=True,
            reasons=['Strict Bangla format validation passed'],
            warnings=[],
            metadata=ValidationMetadata(
                format='strict',
                region=region,
                series=series,
                vehicle_type=infer_vehicle_type(series, self.rules.series_categories)
            )
        )

    def _validate_fallback(self, plate: str) -> _PassOutcome:
        """Permissive check: sane length and some Bengali content"""
        reasons: List[str] = []
        warnings: List[str] = []

        if not 3 <= len(plate) <= 20:
            reasons.append(f"Plate length should be 3-20 characters, got {len(plate)}")
            return _PassOutcome(valid=False, reasons=reasons, warnings=warnings)

        script_chars = sum(1 for char in plate if is_script_char(char))
        if script_chars < 2:
            reasons.append('Insufficient Bengali characters for fallback validation')
            return _PassOutcome(valid=False, reasons=reasons, warnings=warnings)

        has_separators = '-' in plate or ' ' in plate
        if not has_separators and len(plate) > 10:
            warnings.append('Long plates should contain separators for readability')

        reasons.append('Demo fallback validation passed')
        reasons.append(f"Found {script_chars} Bengali characters")

        return _PassOutcome(
            valid=True,
            reasons=reasons,
            warnings=warnings,
            metadata=ValidationMetadata(
                format='fallback',
                script_char_count=script_chars,
                has_separators=has_separators
            )
        )

    def validate_batch(self, plates: List[str]) -> List[ValidationResult]:
        self.logger.info(f"Batch validation started for {len(plates)} plates")
        results = [self.validate_plate(plate) for plate in plates]

        passed = sum(1 for r in results if r.valid)
        self.logger.info(
            f"Batch validation completed: {passed}/{len(results)} passed",
            extra={'data': {
                'total': len(results),
                'passed': passed,
                'failed': len(results) - passed
            }}
        )
        return results

    def update_rules(self, regions: Optional[List[str]] = None,
                     digits: Optional[List[str]] = None,
                     series_categories: Optional[Dict[str, str]] = None) -> None:
        if regions is not None:
            self.rules.regions = list(regions)
        if digits is not None:
            self.rules.digits = list(digits)
        if series_categories is not None:
            self.rules.series_categories = dict(series_categories)
        self.logger.info("Validation rules updated")

    def set_fallback_enabled(self, enabled: bool) -> None:
        self.fallback_enabled = enabled
        self.logger.info(f"Fallback validation {'enabled' if enabled else 'disabled'}")

    def get_rules(self) -> ValidationRules:
        return ValidationRules(
            regions=list(self.rules.regions),
            digits=list(self.rules.digits),
            series_categories=dict(self.rules.series_categories)
        )

    def get_statistics(self, top_reasons: int = 5) -> Dict[str, Any]:
        return {
            'total_validations': self._total,
            'strict_passes': self._strict_passes,
            'fallback_passes': self._fallback_passes,
            'failures': self._failures,
            'common_failure_reasons': dict(self._failure_reasons.most_common(top_reasons))
        }
