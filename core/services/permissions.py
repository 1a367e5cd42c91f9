from core.models import Member


def member_for(user, department):
    if not user.is_authenticated:
        return None
    return Member.objects.filter(user=user, department=department).first()


def is_department_member(user, department):
    if getattr(user, "is_system_admin", False):
        return True
    return member_for(user, department) is not None


def is_department_leader(user, department):
    if getattr(user, "is_system_admin", False):
        return True
    if not user.is_authenticated:
        return False
    if department.leader_id == user.pk:
        return True
    member = member_for(user, department)
    return member is not None and member.is_leader


def department_members(department):
    return list(Member.objects.filter(department=department).select_related("user").order_by("user__full_name"))
