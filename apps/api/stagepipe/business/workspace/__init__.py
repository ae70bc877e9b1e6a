from stagepipe.business.workspace.models import AccountMember, Client, ClientMember, Profile

__all__ = [
    "AccountMember",
    "Client",
    "ClientMember",
    "Profile",
]
