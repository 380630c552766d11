"""Role eligibility rules for interview rounds."""

from typing import Iterable, Optional

from models.entities import (
    SENIORITY_LEVELS,
    InterviewerCapacity,
    RoleRule,
    Violation,
    ViolationType,
    seniority_rank,
)


DEFAULT_ROLE_RULES: list[RoleRule] = [
    RoleRule(
        round="Recruiter Screen",
        allowed_roles=["Recruiter", "Talent Acquisition", "Senior Recruiter"],
        preferred_roles=["Senior Recruiter"],
        blocked_roles=["Engineer", "Manager"],
    ),
    RoleRule(
        round="Technical Round",
        allowed_roles=["Software Engineer", "Senior Engineer", "Staff Engineer", "Principal Engineer"],
        preferred_roles=["Senior Engineer", "Staff Engineer"],
        blocked_roles=["Recruiter", "Product Manager"],
        seniority_requirement="senior",
    ),
    RoleRule(
        round="System Design",
        allowed_roles=["Senior Engineer", "Staff Engineer", "Principal Engineer", "Engineering Manager"],
        preferred_roles=["Staff Engineer", "Principal Engineer"],
        blocked_roles=["Junior Engineer", "Recruiter"],
        seniority_requirement="staff",
    ),
    RoleRule(
        round="Final Round",
        allowed_roles=["Hiring Manager", "Engineering Manager", "Senior Manager", "Director", "VP Engineering"],
        preferred_roles=["Hiring Manager", "Director"],
        blocked_roles=["Junior Engineer", "Recruiter"],
        mandatory_roles=["Hiring Manager"],
        seniority_requirement="senior",
    ),
    RoleRule(
        round="Behavioral",
        allowed_roles=["HR Partner", "Engineering Manager", "Team Lead"],
        preferred_roles=["HR Partner", "Engineering Manager"],
        blocked_roles=["Individual Contributor"],
    ),
]


def _norm(value: str) -> str:
    return value.strip().lower()


def _contains(roles: Iterable[str], role: str) -> bool:
    wanted = _norm(role)
    return any(_norm(r) == wanted for r in roles)


class EligibilityValidator:
    """
    Decide whether an interviewer role may serve a round.

    Rules are checked in a fixed order and the first match wins:
    blocked role, missing mandatory role, role not allowed, insufficient
    seniority. Rounds without a rule accept everyone. Violations carry a
    suggestion naming a compliant role, but never pick a replacement.
    """

    def __init__(self, rules: Optional[list[RoleRule]] = None, enforce: bool = True):
        self.enforce = enforce
        self._rules: dict[str, RoleRule] = {}
        for rule in rules if rules is not None else DEFAULT_ROLE_RULES:
            self.add_rule(rule)

    def add_rule(self, rule: RoleRule) -> None:
        self._rules[_norm(rule.round)] = rule

    def rule_for(self, round_name: str) -> Optional[RoleRule]:
        return self._rules.get(_norm(round_name))

    @property
    def rules(self) -> list[RoleRule]:
        return list(self._rules.values())

    def compliant_roles(self, round_name: str) -> list[str]:
        """Roles that pass the role checks of a round, preferred ones first."""
        rule = self.rule_for(round_name)
        if rule is None:
            return []
        if rule.mandatory_roles:
            candidates = list(rule.mandatory_roles)
        else:
            candidates = list(rule.preferred_roles) + [
                r for r in rule.allowed_roles if not _contains(rule.preferred_roles, r)
            ]
        return [
            r for r in candidates
            if not _contains(rule.blocked_roles, r) and _contains(rule.allowed_roles, r)
        ]

    def validate(
        self,
        round_name: str,
        interviewer_role: str,
        seniority: Optional[str] = None,
    ) -> Optional[Violation]:
        """Return None when the role may serve the round, else the first violation."""
        rule = self.rule_for(round_name)
        if rule is None or not self.enforce:
            return None

        compliant = self.compliant_roles(round_name)
        suggestion_role = compliant[0] if compliant else None

        if _contains(rule.blocked_roles, interviewer_role):
            return Violation(
                type=ViolationType.BLOCKED_ROLE,
                round=rule.round,
                role=interviewer_role,
                message=f"{interviewer_role} is blocked for {rule.round}",
                suggestion=self._suggest(suggestion_role, rule.round),
                severity="medium",
            )

        if rule.mandatory_roles and not _contains(rule.mandatory_roles, interviewer_role):
            return Violation(
                type=ViolationType.MISSING_MANDATORY_ROLE,
                round=rule.round,
                role=interviewer_role,
                message=f"{rule.round} requires mandatory role: {' or '.join(rule.mandatory_roles)}",
                suggestion=f"Must include {' or '.join(rule.mandatory_roles)} in {rule.round}",
            )

        if not _contains(rule.allowed_roles, interviewer_role):
            return Violation(
                type=ViolationType.NOT_ELIGIBLE,
                round=rule.round,
                role=interviewer_role,
                message=f"{interviewer_role} is not eligible for {rule.round}",
                suggestion=self._suggest(suggestion_role, rule.round),
                severity="medium",
            )

        if rule.seniority_requirement and seniority_rank(seniority) < seniority_rank(rule.seniority_requirement):
            return Violation(
                type=ViolationType.INSUFFICIENT_SENIORITY,
                round=rule.round,
                role=interviewer_role,
                message=(
                    f"{rule.round} needs {rule.seniority_requirement} seniority or above, "
                    f"got {seniority or 'unknown'}"
                ),
                suggestion=self._suggest(suggestion_role, rule.round, rule.seniority_requirement),
            )

        return None

    def validate_interviewer(self, round_name: str, capacity: InterviewerCapacity) -> Optional[Violation]:
        return self.validate(round_name, capacity.role, capacity.seniority)

    def validate_panel(
        self,
        round_name: str,
        panel: list[InterviewerCapacity],
    ) -> list[Violation]:
        """Validate every panel member plus the round's minimum head count."""
        violations = []
        valid = 0
        for member in panel:
            violation = self.validate_interviewer(round_name, member)
            if violation is None:
                valid += 1
            else:
                violations.append(violation)

        rule = self.rule_for(round_name)
        if rule is not None and self.enforce and valid < rule.minimum_required:
            compliant = self.compliant_roles(round_name)
            violations.append(Violation(
                type=ViolationType.BELOW_MINIMUM,
                round=rule.round,
                role="",
                message=f"{rule.round} needs {rule.minimum_required} eligible interviewer(s), has {valid}",
                suggestion=self._suggest(compliant[0] if compliant else None, rule.round),
                severity="low" if valid else "high",
            ))
        return violations

    def seniority_gap(self, round_name: str, seniority: Optional[str]) -> int:
        """Distance between an interviewer's seniority and what the round asks for."""
        rule = self.rule_for(round_name)
        if rule is None or not rule.seniority_requirement:
            return 0
        rank = seniority_rank(seniority)
        if rank < 0:
            return len(SENIORITY_LEVELS)
        return abs(rank - seniority_rank(rule.seniority_requirement))

    @staticmethod
    def _suggest(role: Optional[str], round_name: str, seniority: Optional[str] = None) -> str:
        if not role:
            return f"No compliant role is configured for {round_name}; update the round rules"
        if seniority:
            return f"Assign a {role} with {seniority} seniority or above instead"
        return f"Assign {role} instead"
