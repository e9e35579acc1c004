"""Bilingual reply templates for every SMS the core sends.

Each entry is an (English, Arabic) pair; ``render`` picks exactly one of
them by language and fills positional ``{}`` slots.
"""

import logging
from datetime import date

from safebirth.domain.enums import AvailabilityStatus, Language, RiskLevel, SkillType

logger = logging.getLogger(__name__)

_REG_MOTHER_EXAMPLE = (
    "REG MOTHER CAMP A ZONE 3",
    "تسجيل ام مخيم أ منطقة 3",
)
_REG_VOLUNTEER_EXAMPLE = (
    "REG VOLUNTEER NAME Ali CAMP A ZONE 3 SKILL MIDWIFE",
    "تسجيل متطوع الاسم علي مخيم أ منطقة 3 مهارة قابلة",
)

TEMPLATES: dict[str, tuple[str, str]] = {
    # --- Registration ----------------------------------------------------
    "camp_required_mother": (
        "Camp is required. Example: " + _REG_MOTHER_EXAMPLE[0],
        "المخيم مطلوب. مثال: " + _REG_MOTHER_EXAMPLE[1],
    ),
    "zone_required_mother": (
        "Zone is required. Example: " + _REG_MOTHER_EXAMPLE[0],
        "المنطقة مطلوبة. مثال: " + _REG_MOTHER_EXAMPLE[1],
    ),
    "camp_required_volunteer": (
        "Camp is required. Example: " + _REG_VOLUNTEER_EXAMPLE[0],
        "المخيم مطلوب. مثال: " + _REG_VOLUNTEER_EXAMPLE[1],
    ),
    "zone_required_volunteer": (
        "Zone is required. Example: " + _REG_VOLUNTEER_EXAMPLE[0],
        "المنطقة مطلوبة. مثال: " + _REG_VOLUNTEER_EXAMPLE[1],
    ),
    "invalid_phone": (
        "This phone number cannot be registered.",
        "لا يمكن تسجيل رقم الهاتف هذا.",
    ),
    "mother_registered": (
        "✅ Registered! Your ID: {}\nCamp: {}, Zone: {}\nSend EMERGENCY if you need urgent help.",
        "✅ تم التسجيل! رقمك: {}\nالمخيم: {}، المنطقة: {}\nأرسل 'طوارئ' إذا احتجت مساعدة عاجلة.",
    ),
    "volunteer_registered": (
        "✅ Volunteer registered! Your ID: {}\nSkill: {}, Zones: {}\nYou are now AVAILABLE to receive alerts.",
        "✅ تم تسجيل المتطوع! رقمك: {}\nالمهارة: {}، المناطق: {}\nأنت الآن متاح لاستلام التنبيهات.",
    ),
    "not_registered_mother": (
        "You are not registered. Please register first: REG MOTHER CAMP [name] ZONE [number]",
        "لم يتم تسجيلك. يرجى التسجيل أولاً: تسجيل ام مخيم [اسم] منطقة [رقم]",
    ),
    "not_registered_volunteer": (
        "You are not registered as a volunteer. Register: " + _REG_VOLUNTEER_EXAMPLE[0],
        "أنت غير مسجل كمتطوع. للتسجيل: " + _REG_VOLUNTEER_EXAMPLE[1],
    ),
    # --- Requests --------------------------------------------------------
    "emergency_no_volunteers": (
        "🚨 EMERGENCY received! Case: {}\n⚠️ No volunteers available in your zone. "
        "Stay calm, we are trying to find help.",
        "🚨 تم استلام الطوارئ! الحالة: {}\n⚠️ لا يوجد متطوعين متاحين في منطقتك. "
        "ابق هادئاً، نحاول إيجاد المساعدة.",
    ),
    "emergency_alerted": (
        "🚨 EMERGENCY received! Case: {}\n✅ {} volunteer(s) have been alerted. Help is on the way. Stay calm.",
        "🚨 تم استلام الطوارئ! الحالة: {}\n✅ تم إخطار {} متطوع(ين). المساعدة في الطريق. ابق هادئاً.",
    ),
    "support_no_volunteers": (
        "📞 Support request received! Case: {}\n⚠️ No volunteers available right now. "
        "We will notify you when someone is available.",
        "📞 تم استلام طلب المساعدة! الحالة: {}\n⚠️ لا يوجد متطوعين متاحين حالياً. "
        "سنخبرك عندما يتوفر أحد.",
    ),
    "support_alerted": (
        "📞 Support request received! Case: {}\n✅ {} volunteer(s) notified. Someone will contact you soon.",
        "📞 تم استلام طلب المساعدة! الحالة: {}\n✅ تم إخطار {} متطوع(ين). سيتواصل معك أحدهم قريباً.",
    ),
    "case_summary": (
        "\n\nCase: {} | {} volunteer(s) notified",
        "\n\nرقم الحالة: {} | تم إخطار {} متطوع",
    ),
    # --- Case lifecycle --------------------------------------------------
    "case_id_required": (
        "Case ID is required. Example: ACCEPT HR-0042",
        "رقم الحالة مطلوب. مثال: قبول HR-0042",
    ),
    "no_current_case": (
        "You have no active case. Include the case ID, e.g. COMPLETE HR-0042",
        "ليس لديك حالة نشطة. أرسل رقم الحالة، مثال: انهاء HR-0042",
    ),
    "case_not_found": (
        "Case {} not found.",
        "الحالة {} غير موجودة.",
    ),
    "case_not_pending": (
        "Case {} is no longer waiting for a volunteer.",
        "الحالة {} لم تعد بانتظار متطوع.",
    ),
    "case_not_active": (
        "Case {} is already closed.",
        "الحالة {} مغلقة بالفعل.",
    ),
    "volunteer_has_case": (
        "You are already assigned to case {}. Send COMPLETE {} first.",
        "أنت مسؤول بالفعل عن الحالة {}. أرسل انهاء {} أولاً.",
    ),
    "not_assigned": (
        "You are not assigned to case {}.",
        "لست مسؤولاً عن الحالة {}.",
    ),
    "not_authorized_cancel": (
        "You are not authorized to cancel case {}.",
        "ليس لديك صلاحية لإلغاء الحالة {}.",
    ),
    "case_accepted": (
        "✅ You have accepted case {}.\nMother in Zone {} has been notified.\nSend COMPLETE {} when finished.",
        "✅ لقد قبلت الحالة {}.\nتم إخطار الأم في المنطقة {}.\nأرسل انهاء {} عند الانتهاء.",
    ),
    "mother_case_accepted": (
        "✅ Your request {} has been accepted!\nVolunteer: {} ({})\nHelp is on the way.",
        "✅ تم قبول طلبك {}!\nالمتطوع: {} ({})\nالمساعدة في الطريق.",
    ),
    "case_completed": (
        "✅ Case {} marked as COMPLETE.\nThank you for your help! Total cases completed: {}",
        "✅ تم إغلاق الحالة {}.\nشكراً لمساعدتك! مجموع الحالات المنجزة: {}",
    ),
    "case_cancelled": (
        "✅ Case {} has been cancelled.",
        "✅ تم إلغاء الحالة {}.",
    ),
    "volunteer_case_cancelled": (
        "ℹ️ Case {} has been cancelled by the mother.",
        "ℹ️ تم إلغاء الحالة {} من قبل الأم.",
    ),
    "mother_case_cancelled": (
        "ℹ️ Your case {} has been cancelled by the volunteer. Send EMERGENCY to request help again.",
        "ℹ️ تم إلغاء حالتك {} من قبل المتطوع. أرسل 'طوارئ' لطلب المساعدة مرة أخرى.",
    ),
    # --- Availability ----------------------------------------------------
    "now_available": (
        "✅ You are now AVAILABLE. You will receive alerts for emergencies in your zones.",
        "✅ أنت الآن متاح. ستتلقى تنبيهات للطوارئ في مناطقك.",
    ),
    "now_busy": (
        "✅ You are now BUSY. You will not receive new alerts until you set yourself as AVAILABLE.",
        "✅ أنت الآن مشغول. لن تتلقى تنبيهات جديدة حتى تصبح متاحاً.",
    ),
    "now_offline": (
        "✅ You are now OFFLINE. You will not receive any alerts.",
        "✅ أنت الآن غير متاح. لن تتلقى أي تنبيهات.",
    ),
    # --- Status / help ---------------------------------------------------
    "mother_status": (
        "📊 Your Status:\nID: {}\nCamp: {}, Zone: {}\nRisk: {}\nDue: {}\nActive case: {}",
        "📊 حالتك:\nالرقم: {}\nالمخيم: {}، المنطقة: {}\nالخطورة: {}\nالموعد: {}\nالحالة النشطة: {}",
    ),
    "volunteer_status": (
        "📊 Your Status:\nID: {}\nStatus: {}\nActive cases: {}\nCompleted: {}",
        "📊 حالتك:\nالرقم: {}\nالوضع: {}\nالحالات النشطة: {}\nالمنجزة: {}",
    ),
    "status_unregistered": (
        "You are not registered.\nMothers: " + _REG_MOTHER_EXAMPLE[0]
        + "\nVolunteers: " + _REG_VOLUNTEER_EXAMPLE[0],
        "أنت غير مسجل.\nللأمهات: " + _REG_MOTHER_EXAMPLE[1]
        + "\nللمتطوعين: " + _REG_VOLUNTEER_EXAMPLE[1],
    ),
    "help": (
        "SafeBirth commands:\n"
        "REG MOTHER CAMP [c] ZONE [z] - register\n"
        "EMERGENCY - urgent help\n"
        "SUPPORT - non-urgent help\n"
        "REG VOLUNTEER CAMP [c] ZONE [z] SKILL [s]\n"
        "ACCEPT/COMPLETE/CANCEL [case]\n"
        "AVAILABLE / BUSY / OFFLINE\n"
        "STATUS - your details\n"
        "HELP - this list",
        "أوامر SafeBirth:\n"
        "تسجيل ام مخيم [اسم] منطقة [رقم] - للتسجيل\n"
        "طوارئ - مساعدة عاجلة\n"
        "مساعدة - مساعدة غير عاجلة\n"
        "تسجيل متطوع مخيم [اسم] منطقة [رقم] مهارة [نوع]\n"
        "قبول/انهاء/الغاء [رقم الحالة]\n"
        "متاح / مشغول / غير متاح\n"
        "حالة - بياناتك\n"
        "الأوامر - هذه القائمة",
    ),
    "unknown_command": (
        "❓ Unknown command. Send HELP for available commands.",
        "❓ أمر غير معروف. أرسل 'الأوامر' لعرض قائمة الأوامر.",
    ),
    # --- Errors ----------------------------------------------------------
    "error": (
        "❌ Error: {}",
        "❌ خطأ: {}",
    ),
    "generic_error": (
        "❌ An error occurred. Please try again.",
        "❌ حدث خطأ. يرجى المحاولة مرة أخرى.",
    ),
    # --- ETA -------------------------------------------------------------
    "eta_recorded": (
        "Response recorded. You'll be notified if selected.",
        "تم تسجيل ردك. سنخبرك إذا تم اختيارك.",
    ),
    "eta_no_case": (
        "There is no open case waiting for your reply.",
        "لا توجد حالة مفتوحة بانتظار ردك.",
    ),
    # --- Volunteer alert -------------------------------------------------
    "volunteer_alert": (
        "🚨 {} Zone {}\nRisk: {} | Due: {}\n📞 Mother: {}\nReply: ACCEPT {}",
        "🚨 {} منطقة {}\nالخطورة: {} | الموعد: {}\n📞 رقم الأم: {}\nللقبول أرسل: قبول {}",
    ),
    # --- Conversation ----------------------------------------------------
    "registered_volunteer_hint": (
        "You're registered as a volunteer. Send 'busy' to pause alerts or 'available' to receive them.",
        "أنت مسجل كمتطوع. أرسل 'مشغول' لإيقاف التنبيهات أو 'متاح' لاستقبالها.",
    ),
    "assistant_unavailable": (
        "SMS service temporarily unavailable. Please try again later.",
        "خدمة الرسائل غير متاحة مؤقتاً. يرجى المحاولة لاحقاً.",
    ),
    "assistant_error": (
        "An error occurred. Please try again.",
        "حدث خطأ. يرجى المحاولة مرة أخرى.",
    ),
}

_SKILL_LABELS = {
    SkillType.MIDWIFE: ("Midwife", "قابلة"),
    SkillType.NURSE: ("Nurse", "ممرضة"),
    SkillType.TRAINED_ATTENDANT: ("Trained Attendant", "مدربة"),
    SkillType.COMMUNITY_HEALTH_WORKER: ("Community Health Worker", "عامل صحة مجتمعي"),
    SkillType.COMMUNITY_VOLUNTEER: ("Community Volunteer", "متطوع مجتمعي"),
}

_AVAILABILITY_LABELS = {
    AvailabilityStatus.AVAILABLE: ("AVAILABLE", "متاح"),
    AvailabilityStatus.BUSY: ("BUSY", "مشغول"),
    AvailabilityStatus.OFFLINE: ("OFFLINE", "غير متاح"),
}

_RISK_LABELS = {
    RiskLevel.HIGH: ("HIGH", "عالية"),
    RiskLevel.MEDIUM: ("MEDIUM", "متوسطة"),
    RiskLevel.LOW: ("LOW", "منخفضة"),
}

_NOT_AVAILABLE = ("N/A", "غير محدد")


def _pick(pair: tuple[str, str], language: Language) -> str:
    return pair[1] if language == Language.ARABIC else pair[0]


def render(key: str, language: Language, *args) -> str:
    """Render template ``key`` in ``language`` with positional ``args``."""
    template = _pick(TEMPLATES[key], language)
    try:
        return template.format(*args)
    except (IndexError, KeyError) as exc:
        logger.warning("Template %s rendered with missing args: %s", key, exc)
        return template


def skill_label(skill: SkillType | None, language: Language) -> str:
    if skill is None:
        return _pick(_NOT_AVAILABLE, language)
    return _pick(_SKILL_LABELS[SkillType(skill)], language)


def availability_label(status: AvailabilityStatus, language: Language) -> str:
    return _pick(_AVAILABILITY_LABELS[AvailabilityStatus(status)], language)


def risk_label(risk: RiskLevel | None, language: Language) -> str:
    if risk is None:
        return _pick(_NOT_AVAILABLE, language)
    return _pick(_RISK_LABELS[RiskLevel(risk)], language)


def due_label(due: date | None, language: Language, today: date | None = None) -> str:
    """Relative due date for alerts: Today/Overdue, Tomorrow, N days, or dd/mm."""
    if due is None:
        return _pick(_NOT_AVAILABLE, language)
    days = (due - (today or date.today())).days
    if days <= 0:
        return _pick(("Today/Overdue", "اليوم/متأخر"), language)
    if days == 1:
        return _pick(("Tomorrow", "غداً"), language)
    if days <= 7:
        return _pick((f"{days} days", f"{days} أيام"), language)
    return due.strftime("%d/%m")


def request_type_label(is_emergency: bool, language: Language) -> str:
    if is_emergency:
        return _pick(("EMERGENCY", "طوارئ"), language)
    return _pick(("SUPPORT", "مساعدة"), language)
