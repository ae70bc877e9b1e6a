from stagepipe.business.workspace.models import AccountMember, Client, ClientMember, Profile
from stagepipe.business.projects.models import Project, ProjectStageEvent
from stagepipe.business.billing.models import Invoice

__all__ = [
    "AccountMember",
    "Client",
    "ClientMember",
    "Invoice",
    "Profile",
    "Project",
    "ProjectStageEvent",
]
