"""
Underwriting Risk Engine
Scores an application's risk factors and decides between automatic
approval, automatic decline and referral to a human underwriter.
"""

from typing import Tuple

from policyflow.pipeline.models import (
    RiskFactors,
    RiskScore,
    UnderwritingDecision,
    UnderwritingMethod,
)


class RiskEngine:
    """
    Deterministic rule-based scoring. All thresholds are class constants so
    that a subclass can tighten or loosen them.
    """

    # Hard stop
    MAX_INSURABLE_AGE = 80

    # Age bands (strictly greater than) and their points
    AGE_BANDS = (
        (65, 50, "senior_65_plus"),
        (60, 35, "senior"),
        (50, 25, None),
        (40, 10, None),
    )
    SMOKER_POINTS = 25

    # Coverage bands (strictly greater than) and their points
    COVERAGE_BANDS = (
        (500_000, 25, "high_coverage"),
        (250_000, 15, "medium_high_coverage"),
        (100_000, 10, None),
    )

    APPROVE_MAX_SCORE = 20

    # Fast-track auto approval
    AUTO_APPROVE_MAX_AGE = 45
    AUTO_APPROVE_MAX_COVERAGE = 250_000
    AUTO_APPROVE_MAX_SCORE = 30

    def score_risk(self, factors: RiskFactors) -> RiskScore:
        """
        Compute a 0-100 risk score with flags and a recommended outcome.

        Args:
            factors: Snapshot of the applicant and cover being underwritten

        Returns:
            RiskScore; applicants over the maximum insurable age always get
            score 100 and a declined recommendation.
        """
        if factors.age > self.MAX_INSURABLE_AGE:
            return RiskScore(
                score=100,
                flags=["age_over_80"],
                recommended=UnderwritingDecision.DECLINED,
            )

        score = 0
        flags = []

        for threshold, points, flag in self.AGE_BANDS:
            if factors.age > threshold:
                score += points
                if flag:
                    flags.append(flag)
                break

        if factors.smoker:
            score += self.SMOKER_POINTS
            flags.append("smoker")

        for threshold, points, flag in self.COVERAGE_BANDS:
            if factors.coverage_amount > threshold:
                score += points
                if flag:
                    flags.append(flag)
                break

        score = min(score, 100)
        if score <= self.APPROVE_MAX_SCORE:
            recommended = UnderwritingDecision.APPROVED
        else:
            recommended = UnderwritingDecision.REFERRED

        return RiskScore(score=score, flags=flags, recommended=recommended)

    def should_auto_decline(self, factors: RiskFactors) -> bool:
        return factors.age > self.MAX_INSURABLE_AGE

    def can_auto_approve(self, factors: RiskFactors, risk: RiskScore) -> bool:
        return (
            factors.age < self.AUTO_APPROVE_MAX_AGE
            and not factors.smoker
            and factors.coverage_amount < self.AUTO_APPROVE_MAX_COVERAGE
            and risk.score <= self.AUTO_APPROVE_MAX_SCORE
        )

    def determine_decision(
        self,
        factors: RiskFactors,
        risk: RiskScore
    ) -> Tuple[UnderwritingDecision, UnderwritingMethod]:
        """
        Apply the decision rules in order. The recommended field of the
        score is not consulted.
        """
        if self.should_auto_decline(factors):
            return UnderwritingDecision.DECLINED, UnderwritingMethod.AUTO
        if self.can_auto_approve(factors, risk):
            return UnderwritingDecision.APPROVED, UnderwritingMethod.AUTO
        if risk.score <= self.APPROVE_MAX_SCORE:
            return UnderwritingDecision.APPROVED, UnderwritingMethod.AUTO
        return UnderwritingDecision.REFERRED, UnderwritingMethod.AUTO
