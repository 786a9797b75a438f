"""
Recipient Resolver.

Turns a PushRequest into exactly one delivery target by evaluating the
targeting rules top-down. The first rule whose precondition holds wins;
selection depends only on which optional request fields are present,
never on registry contents:

    1. IndividualRule  - student_id present
    2. CourseRule      - course present
    3. VersionRule     - version present
    4. TopicRule       - always applies
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence, Tuple

from coursepush.core.logging_config import mask_token
from coursepush.services.push.constants import TARGET_VERSION, TOPIC_SEPARATOR
from coursepush.services.push.exceptions import (
    EmptyToken,
    NoRecipients,
    VersionMismatch,
)
from coursepush.services.push.models import (
    DeviceRecord,
    MulticastTarget,
    PushRequest,
    RecipientTarget,
    SingleTarget,
    TopicTarget,
)
from coursepush.services.push.registry import DeviceRegistry

logger = logging.getLogger(__name__)


def build_topic(partner: str, environment: str) -> str:
    """Topic name clients of a partner/environment pair subscribe to."""
    return f"{partner}{TOPIC_SEPARATOR}{environment}"


def _unique_tokens(records: Iterable[DeviceRecord]) -> Tuple[str, ...]:
    seen = set()
    tokens: List[str] = []
    for record in records:
        if record.token and record.token not in seen:
            seen.add(record.token)
            tokens.append(record.token)
    return tuple(tokens)


class TargetingRule(ABC):
    """One targeting strategy: a precondition plus a resolution."""

    name: str = ""

    @abstractmethod
    def applies(self, request: PushRequest) -> bool:
        """Whether this rule handles the request."""

    @abstractmethod
    def resolve(self, request: PushRequest, registry: DeviceRegistry) -> RecipientTarget:
        """Produce the target, or raise a resolution error."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class IndividualRule(TargetingRule):
    name = "individual"

    def applies(self, request: PushRequest) -> bool:
        return request.student_id is not None

    def resolve(self, request: PushRequest, registry: DeviceRegistry) -> SingleTarget:
        record = registry.get(request.student_id)

        if request.version is not None and request.version != record.version:
            raise VersionMismatch(
                f"Student {request.student_id} does not have version {request.version}."
            )
        if not record.has_token:
            raise EmptyToken(f"Student {request.student_id} has no registered token.")

        return SingleTarget(
            token=record.token,
            student_id=record.id,
            version=record.version,
        )


class CourseRule(TargetingRule):
    name = "course"

    def applies(self, request: PushRequest) -> bool:
        return request.course is not None

    def resolve(self, request: PushRequest, registry: DeviceRegistry) -> MulticastTarget:
        records = registry.list()
        tokens = _unique_tokens(
            r for r in records
            if r.partner == request.partner
            and r.environment == request.environment
            and request.course in r.courses
            and (request.version is None or r.version == request.version)
        )
        if not tokens:
            raise NoRecipients("No students found for this course/version.")
        return MulticastTarget(tokens=tokens)


class VersionRule(TargetingRule):
    name = "version"

    def applies(self, request: PushRequest) -> bool:
        return request.version is not None

    def resolve(self, request: PushRequest, registry: DeviceRegistry) -> MulticastTarget:
        records = registry.list()
        tokens = _unique_tokens(
            r for r in records
            if r.partner == request.partner
            and r.environment == request.environment
            and r.version == request.version
        )
        if not tokens:
            raise NoRecipients("No students found for this version.")
        return MulticastTarget(tokens=tokens, target_type=TARGET_VERSION)


class TopicRule(TargetingRule):
    name = "topic"

    def applies(self, request: PushRequest) -> bool:
        return True

    def resolve(self, request: PushRequest, registry: DeviceRegistry) -> TopicTarget:
        return TopicTarget(topic=build_topic(request.partner, request.environment))


DEFAULT_RULES: Tuple[TargetingRule, ...] = (
    IndividualRule(),
    CourseRule(),
    VersionRule(),
    TopicRule(),
)


class RecipientResolver:
    """
    Applies the ordered targeting rules against a DeviceRegistry.

    The rule tuple must end with a rule that always applies.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        rules: Optional[Sequence[TargetingRule]] = None,
    ):
        self.registry = registry
        self.rules: Tuple[TargetingRule, ...] = tuple(rules) if rules else DEFAULT_RULES

    def select_rule(self, request: PushRequest) -> TargetingRule:
        for rule in self.rules:
            if rule.applies(request):
                return rule
        raise LookupError("No targeting rule applies to request")

    def resolve(self, request: PushRequest) -> RecipientTarget:
        """
        Resolve a request into a SingleTarget, MulticastTarget or TopicTarget.

        Raises:
            NotFound: Individual target not in the roster
            VersionMismatch: Individual target runs another version
            EmptyToken: Individual target has no registered token
            NoRecipients: Course or version broadcast matched nothing
        """
        rule = self.select_rule(request)
        target = rule.resolve(request, self.registry)

        if isinstance(target, MulticastTarget):
            detail = {"recipients": len(target.tokens)}
        elif isinstance(target, SingleTarget):
            detail = {"student_id": target.student_id, "token": mask_token(target.token)}
        else:
            detail = {"topic": target.topic}

        logger.debug(
            "Recipients resolved",
            extra={"rule": rule.name, "target_type": target.target_type, **detail}
        )
        return target
