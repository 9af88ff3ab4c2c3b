# anpr_pipeline/selection/frame_selector.py
from dataclasses import dataclass
from typing import Dict, List, Any, Optional
import logging

from ..models import EvidenceCrop


@dataclass(frozen=True)
class FrameQuality:
    sharpness: float
    contrast: float
    area: float
    overall: float


class FrameSelector:
    """Scores evidence crops and picks the best one (or a diverse subset)"""

    def __init__(self,
                 sharpness_weight: float = 0.4,
                 contrast_weight: float = 0.3,
                 area_weight: float = 0.3,
                 reference_area: float = 10000,
                 default_sharpness: float = 0.7,
                 default_contrast: float = 0.7,
                 top_n: int = 3,
                 diverse: bool = False,
                 logger: Optional[logging.Logger] = None):
        self.sharpness_weight = sharpness_weight
        self.contrast_weight = contrast_weight
        self.area_weight = area_weight
        self.reference_area = reference_area
        self.default_sharpness = default_sharpness
        self.default_contrast = default_contrast
        self.top_n = top_n
        self.diverse = diverse
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, section: Dict[str, Any],
                    logger: Optional[logging.Logger] = None) -> 'FrameSelector':
        weights = section.get('weights', {})
        return cls(
            sharpness_weight=weights.get('sharpness', 0.4),
            contrast_weight=weights.get('contrast', 0.3),
            area_weight=weights.get('area', 0.3),
            reference_area=section.get('reference_area', 10000),
            default_sharpness=section.get('default_sharpness', 0.7),
            default_contrast=section.get('default_contrast', 0.7),
            top_n=section.get('top_n', 3),
            diverse=section.get('diverse', False),
            logger=logger
        )

    def calculate_quality(self, crop: EvidenceCrop) -> FrameQuality:
        """Weighted quality score; crops without metrics are estimated from their box"""
        if crop.quality is not None:
            sharpness = crop.quality.sharpness
            contrast = crop.quality.contrast
            area = crop.quality.area
        else:
            x1, y1, x2, y2 = crop.bbox
            area = min((x2 - x1) * (y2 - y1) / self.reference_area, 1.0)
            sharpness = self.default_sharpness
            contrast = self.default_contrast

        overall = (
            sharpness * self.sharpness_weight +
            contrast * self.contrast_weight +
            area * self.area_weight
        )
        return FrameQuality(sharpness=sharpness, contrast=contrast, area=area, overall=overall)

    def _rank(self, crops: List[EvidenceCrop]) -> List[EvidenceCrop]:
        # list.sort is stable, so equal scores keep input order
        scored = [(crop, self.calculate_quality(crop).overall) for crop in crops]
        scored.sort(key=lambda item: item[1], reverse=True)
        return [crop for crop, _ in scored]

    def select_best_frame(self, crops: List[EvidenceCrop]) -> Optional[EvidenceCrop]:
        if not crops:
            self.logger.warning("No crops provided for selection")
            return None

        if len(crops) == 1:
            self.logger.debug(f"Single crop, returning {crops[0].crop_id}")
            return crops[0]

        ranked = self._rank(crops)
        best = ranked[0]
        self.logger.info(
            f"Best frame selected: {best.crop_id}",
            extra={'data': {
                'best_crop_id': best.crop_id,
                'quality': self.calculate_quality(best).__dict__,
                'total_crops': len(crops),
                'worst_overall': self.calculate_quality(ranked[-1]).overall
            }}
        )
        return best

    def get_top_frames(self, crops: List[EvidenceCrop], n: int = 3) -> List[EvidenceCrop]:
        """Top n crops by quality, best first"""
        if n <= 0:
            return []

        top = self._rank(crops)[:n]
        self.logger.debug(f"Top frames selected: {len(top)} of {len(crops)}")
        return top

    def select_diverse_frames(self, crops: List[EvidenceCrop], n: int = 3) -> List[EvidenceCrop]:
        """
        Best crop first, then greedily the crop farthest in time from
        everything already selected.
        """
        if n <= 0 or not crops:
            return []

        remaining = list(crops)
        best = self._rank(remaining)[0]
        selected = [best]
        remaining.remove(best)

        while len(selected) < n and remaining:
            best_diversity = -1.0
            best_index = 0
            for index, crop in enumerate(remaining):
                diversity = self._temporal_diversity(crop, selected)
                if diversity > best_diversity:
                    best_diversity = diversity
                    best_index = index
            selected.append(remaining.pop(best_index))

        self.logger.debug(f"Diverse frames selected: {len(selected)} of {len(crops)}")
        return selected

    @staticmethod
    def _temporal_diversity(crop: EvidenceCrop, selected: List[EvidenceCrop]) -> float:
        """Minimum distance in seconds to any selected crop"""
        if not selected:
            return 1.0
        return min(abs(crop.time_ms - s.time_ms) for s in selected) / 1000

    def select(self, crops: List[EvidenceCrop]) -> List[EvidenceCrop]:
        """Crops to feed into recognition, using the configured strategy"""
        if self.diverse:
            return self.select_diverse_frames(crops, self.top_n)
        return self.get_top_frames(crops, self.top_n)
