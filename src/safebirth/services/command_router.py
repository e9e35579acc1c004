"""Command Router: executes a recognised SMS command and renders the reply.

Every CommandKind maps to exactly one handler. Handlers raise
``DispatchError`` subclasses for anything the sender did wrong; ``route``
turns those into the bilingual error reply so nothing escapes to the
transport layer.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from safebirth.agents.sms.command_matcher import (
    parse_due_date,
    parse_risk_level,
    parse_skill_type,
    parse_zones,
)
from safebirth.agents.sms.contracts import ParsedCommand
from safebirth.agents.sms.reply_templates import (
    availability_label,
    due_label,
    render,
    risk_label,
    skill_label,
)
from safebirth.domain.enums import (
    AvailabilityStatus,
    CommandKind,
    Language,
    RequestActor,
    RequestCategory,
)
from safebirth.domain.models import HelpRequest, Mother, Volunteer
from safebirth.services.errors import (
    DispatchError,
    NotFoundError,
    UnauthorizedActionError,
    ValidationError,
)
from safebirth.services.help_request_service import HelpRequestService
from safebirth.services.matching_service import MatchingService
from safebirth.services.mother_service import MotherService
from safebirth.services.phone import mask_phone
from safebirth.services.volunteer_service import VolunteerService

logger = logging.getLogger(__name__)


@dataclass
class RouteResult:
    reply: str
    success: bool = True


@dataclass
class _Context:
    """Everything a handler needs about one inbound command."""
    phone: str
    command: ParsedCommand
    detected_language: Language
    language: Language  # reply language
    mother: Mother | None = None
    volunteer: Volunteer | None = None


# CommandKind -> handler method name
_HANDLERS: dict[CommandKind, str] = {
    CommandKind.REGISTER_MOTHER: "_register_mother",
    CommandKind.REGISTER_VOLUNTEER: "_register_volunteer",
    CommandKind.EMERGENCY: "_emergency",
    CommandKind.SUPPORT: "_support",
    CommandKind.ACCEPT: "_accept",
    CommandKind.COMPLETE: "_complete",
    CommandKind.CANCEL: "_cancel",
    CommandKind.AVAILABLE: "_set_available",
    CommandKind.BUSY: "_set_busy",
    CommandKind.OFFLINE: "_set_offline",
    CommandKind.STATUS: "_status",
    CommandKind.HELP: "_help",
    CommandKind.UNKNOWN: "_unknown",
}

assert set(_HANDLERS) == set(CommandKind), (
    f"Unhandled command kinds: {set(CommandKind) - set(_HANDLERS)}"
)


class CommandRouter:
    """Runs one domain operation per recognised command."""

    def __init__(self, db: AsyncSession, sms_service):
        self.db = db
        self.sms_service = sms_service
        self.mothers = MotherService(db)
        self.volunteers = VolunteerService(db)
        self.requests = HelpRequestService(db)
        self.matching = MatchingService(db, sms_service)

    async def route(
        self,
        phone: str,
        command: ParsedCommand,
        language: Language,
    ) -> RouteResult:
        """Execute ``command`` for ``phone`` and return the reply to send back.

        ``language`` is the detected language of the inbound message; a
        registered sender is answered in their stored preference instead.
        """
        mother = await self.mothers.get_by_phone(phone)
        volunteer = await self.volunteers.get_by_phone(phone)
        ctx = _Context(
            phone=phone,
            command=command,
            detected_language=language,
            language=_reply_language(language, mother, volunteer),
            mother=mother,
            volunteer=volunteer,
        )

        handler = getattr(self, _HANDLERS[command.kind])
        logger.info("Routing %s from %s", command.kind.value, mask_phone(phone))
        try:
            reply = await handler(ctx)
            return RouteResult(reply=reply, success=True)
        except DispatchError as exc:
            logger.warning(
                "%s rejected for %s: %s", command.kind.value, mask_phone(phone), exc,
            )
            detail = render(exc.template_key, ctx.language, *exc.args_for_template)
            return RouteResult(reply=render("error", ctx.language, detail), success=False)
        except Exception:
            logger.exception(
                "Error handling %s from %s", command.kind.value, mask_phone(phone),
            )
            await self.db.rollback()
            return RouteResult(reply=render("generic_error", ctx.language), success=False)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def _register_mother(self, ctx: _Context) -> str:
        fields = ctx.command.fields
        risk = parse_risk_level(fields["risk"]) if fields.get("risk") else None
        mother = await self.mothers.register(
            ctx.phone,
            fields.get("camp"),
            fields.get("zone"),
            ctx.detected_language,
            name=fields.get("name"),
            due_date=parse_due_date(fields.get("due")),
            risk_level=risk,
        )
        ctx.language = ctx.detected_language
        return render("mother_registered", ctx.language, mother.formatted_id, mother.camp, mother.zone)

    async def _register_volunteer(self, ctx: _Context) -> str:
        fields = ctx.command.fields
        skill = parse_skill_type(fields["skill"]) if fields.get("skill") else None
        volunteer = await self.volunteers.register(
            ctx.phone,
            fields.get("camp"),
            parse_zones(fields.get("zones") or fields.get("zone")),
            ctx.detected_language,
            name=fields.get("name"),
            skill=skill,
        )
        ctx.language = ctx.detected_language
        return render(
            "volunteer_registered",
            ctx.language,
            volunteer.formatted_id,
            skill_label(volunteer.skill, ctx.language),
            ", ".join(volunteer.zones or []),
        )

    # ------------------------------------------------------------------
    # Help requests
    # ------------------------------------------------------------------

    async def _emergency(self, ctx: _Context) -> str:
        return await self._raise_request(ctx, RequestCategory.EMERGENCY)

    async def _support(self, ctx: _Context) -> str:
        return await self._raise_request(ctx, RequestCategory.SUPPORT)

    async def _raise_request(self, ctx: _Context, category: RequestCategory) -> str:
        if ctx.mother is None:
            raise NotFoundError("not_registered_mother")

        request = await self.requests.create_request(ctx.mother, category)
        notified = await self.matching.match_and_notify(request)

        prefix = "emergency" if category == RequestCategory.EMERGENCY else "support"
        if not notified:
            return render(f"{prefix}_no_volunteers", ctx.language, request.case_code)
        return render(f"{prefix}_alerted", ctx.language, request.case_code, len(notified))

    # ------------------------------------------------------------------
    # Case lifecycle
    # ------------------------------------------------------------------

    async def _load_case(self, case_code: str) -> HelpRequest:
        request = await self.requests.get_by_case_code(case_code)
        if request is None:
            raise NotFoundError("case_not_found", case_code)
        return request

    async def _accept(self, ctx: _Context) -> str:
        case_code = ctx.command.fields.get("case_id")
        if not case_code:
            raise ValidationError("case_id_required")
        volunteer = ctx.volunteer
        if volunteer is None:
            raise NotFoundError("not_registered_volunteer")
        if volunteer.current_case_code and volunteer.current_case_code != case_code:
            raise ValidationError(
                "volunteer_has_case", volunteer.current_case_code, volunteer.current_case_code,
            )

        request = await self._load_case(case_code)
        await self.requests.accept(request, volunteer)
        self.volunteers.assign_case(volunteer, request.case_code)
        await self.db.flush()

        mother = request.mother
        if mother is not None:
            mother_language = Language(mother.preferred_language or Language.ENGLISH)
            await self._notify(
                mother.phone,
                render(
                    "mother_case_accepted",
                    mother_language,
                    request.case_code,
                    volunteer.name or volunteer.formatted_id,
                    skill_label(volunteer.skill, mother_language),
                ),
            )

        return render(
            "case_accepted", ctx.language, request.case_code, request.zone or "-", request.case_code,
        )

    async def _complete(self, ctx: _Context) -> str:
        volunteer = ctx.volunteer
        if volunteer is None:
            raise NotFoundError("not_registered_volunteer")
        case_code = ctx.command.fields.get("case_id") or volunteer.current_case_code
        if not case_code:
            raise ValidationError("no_current_case")

        request = await self._load_case(case_code)
        if request.accepted_by_id != volunteer.id:
            raise UnauthorizedActionError("not_assigned", case_code)

        await self.requests.complete(request, RequestActor.VOLUNTEER)
        self.volunteers.release_case(volunteer, completed=True)
        await self.db.flush()

        return render("case_completed", ctx.language, request.case_code, volunteer.completed_cases)

    async def _cancel(self, ctx: _Context) -> str:
        case_code = ctx.command.fields.get("case_id")
        if not case_code and ctx.volunteer is not None:
            case_code = ctx.volunteer.current_case_code
        if not case_code and ctx.mother is not None:
            active = await self.requests.find_active_for_mother(ctx.mother)
            case_code = active.case_code if active else None
        if not case_code:
            if ctx.mother is None and ctx.volunteer is None:
                raise NotFoundError("status_unregistered")
            raise ValidationError("no_current_case")

        request = await self._load_case(case_code)
        is_mother = request.mother is not None and request.mother.phone == ctx.phone
        assignee = request.accepted_by
        is_volunteer = assignee is not None and assignee.phone == ctx.phone
        if not is_mother and not is_volunteer:
            raise UnauthorizedActionError("not_authorized_cancel", case_code)

        actor = RequestActor.MOTHER if is_mother else RequestActor.VOLUNTEER
        await self.requests.cancel(request, actor)
        if assignee is not None and assignee.current_case_code == request.case_code:
            self.volunteers.release_case(assignee, completed=False)
        await self.db.flush()

        if is_mother and assignee is not None:
            await self._notify(
                assignee.phone,
                render(
                    "volunteer_case_cancelled",
                    Language(assignee.preferred_language or Language.ENGLISH),
                    request.case_code,
                ),
            )
        elif is_volunteer and request.mother is not None:
            await self._notify(
                request.mother.phone,
                render(
                    "mother_case_cancelled",
                    Language(request.mother.preferred_language or Language.ENGLISH),
                    request.case_code,
                ),
            )

        return render("case_cancelled", ctx.language, request.case_code)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def _set_available(self, ctx: _Context) -> str:
        return await self._set_availability(ctx, AvailabilityStatus.AVAILABLE, "now_available")

    async def _set_busy(self, ctx: _Context) -> str:
        return await self._set_availability(ctx, AvailabilityStatus.BUSY, "now_busy")

    async def _set_offline(self, ctx: _Context) -> str:
        return await self._set_availability(ctx, AvailabilityStatus.OFFLINE, "now_offline")

    async def _set_availability(
        self, ctx: _Context, status: AvailabilityStatus, template_key: str,
    ) -> str:
        if ctx.volunteer is None:
            raise NotFoundError("not_registered_volunteer")
        await self.volunteers.set_availability(ctx.volunteer, status)
        return render(template_key, ctx.language)

    # ------------------------------------------------------------------
    # Status / help
    # ------------------------------------------------------------------

    async def _status(self, ctx: _Context) -> str:
        lang = ctx.language
        if ctx.mother is not None:
            mother = ctx.mother
            active = await self.requests.find_active_for_mother(mother)
            return render(
                "mother_status",
                lang,
                mother.formatted_id,
                mother.camp,
                mother.zone,
                risk_label(mother.risk_level, lang),
                due_label(mother.due_date, lang),
                active.case_code if active else "-",
            )
        if ctx.volunteer is not None:
            volunteer = ctx.volunteer
            active_cases = await self.requests.find_active_for_volunteer(volunteer)
            return render(
                "volunteer_status",
                lang,
                volunteer.formatted_id,
                availability_label(volunteer.availability, lang),
                len(active_cases),
                volunteer.completed_cases or 0,
            )
        return render("status_unregistered", lang)

    async def _help(self, ctx: _Context) -> str:
        return render("help", ctx.language)

    async def _unknown(self, ctx: _Context) -> str:
        return render("unknown_command", ctx.language)

    # ------------------------------------------------------------------
    # Outbound notifications
    # ------------------------------------------------------------------

    async def _notify(self, phone: str, message: str) -> None:
        """Best-effort SMS to a counter-party; failures never undo the transition."""
        try:
            await self.sms_service.send_sms(phone, message)
        except Exception as exc:
            logger.error("Failed to notify %s: %s", mask_phone(phone), exc)


def _reply_language(
    detected: Language, mother: Mother | None, volunteer: Volunteer | None,
) -> Language:
    for profile in (mother, volunteer):
        if profile is not None and profile.preferred_language:
            return Language(profile.preferred_language)
    return detected
