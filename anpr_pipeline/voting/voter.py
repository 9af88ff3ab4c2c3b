# anpr_pipeline/voting/voter.py
from typing import Dict, List, Any, Optional, Sequence
import logging

import numpy as np

from ..models import RecognitionCandidate, VoteMethod, VoteResult, VoteTally


class Voter:
    """Reduces recognition candidates from one or many crops to a consensus text"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def vote(self, candidates: Sequence[Sequence[RecognitionCandidate]]) -> VoteResult:
        """
        Vote over per-crop candidate lists.

        The winner is the most frequent text. A tie on count goes to the
        highest mean confidence, then to the highest max confidence; anything
        still tied resolves to the text encountered first.
        """
        if not candidates:
            self.logger.warning("No candidates provided for voting")
            return self._empty_result()

        all_candidates = [c for crop_candidates in candidates for c in crop_candidates]
        if not all_candidates:
            self.logger.warning("No candidates found in input")
            return self._empty_result()

        # dicts keep first-encountered order, which is the final tie-break
        groups: Dict[str, List[float]] = {}
        for candidate in all_candidates:
            groups.setdefault(candidate.text, []).append(candidate.confidence)

        tallies = [
            VoteTally(
                text=text,
                count=len(confidences),
                avg_confidence=float(np.mean(confidences)),
                max_confidence=float(max(confidences))
            )
            for text, confidences in groups.items()
        ]
        tallies.sort(key=lambda t: t.count, reverse=True)

        if len(tallies) == 1 or tallies[0].count > tallies[1].count:
            winner = tallies[0]
            method = VoteMethod.FREQUENCY
        else:
            tied = [t for t in tallies if t.count == tallies[0].count]
            tied.sort(key=lambda t: t.avg_confidence, reverse=True)

            if tied[0].avg_confidence > tied[1].avg_confidence:
                winner = tied[0]
                method = VoteMethod.CONFIDENCE
            else:
                tied.sort(key=lambda t: t.max_confidence, reverse=True)
                winner = tied[0]
                method = VoteMethod.TIEBREAK

        result = VoteResult(
            winner=winner.text,
            confidence=winner.avg_confidence,
            method=method,
            candidates=tuple(tallies)
        )

        self.logger.info(
            f"Voting completed: {winner.text!r} ({method.value})",
            extra={'data': {
                'winner': winner.text,
                'confidence': winner.avg_confidence,
                'method': method.value,
                'total_candidates': len(all_candidates),
                'unique_texts': len(tallies),
                'crop_count': len(candidates)
            }}
        )
        return result

    def vote_single_crop(self, candidates: Sequence[RecognitionCandidate]) -> VoteResult:
        return self.vote([candidates])

    def get_voting_statistics(self, candidates: Sequence[Sequence[RecognitionCandidate]]) -> Dict[str, Any]:
        all_candidates = [c for crop_candidates in candidates for c in crop_candidates]

        if not all_candidates:
            return {
                'total_crops': 0,
                'total_candidates': 0,
                'unique_texts': 0,
                'avg_candidates_per_crop': 0,
                'confidence_range': {'min': 0, 'max': 0, 'avg': 0}
            }

        confidences = [c.confidence for c in all_candidates]
        return {
            'total_crops': len(candidates),
            'total_candidates': len(all_candidates),
            'unique_texts': len({c.text for c in all_candidates}),
            'avg_candidates_per_crop': len(all_candidates) / len(candidates),
            'confidence_range': {
                'min': min(confidences),
                'max': max(confidences),
                'avg': float(np.mean(confidences))
            }
        }

    @staticmethod
    def _empty_result() -> VoteResult:
        return VoteResult(winner='', confidence=0.0, method=VoteMethod.FREQUENCY, candidates=())
