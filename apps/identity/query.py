from typing import List
from sqlalchemy import ColumnElement, String, cast
from framework.query import QueryBuilder, contains_ci
from .models import AppUser
from .schemas import UserFilter


class UserQueryBuilder(QueryBuilder[AppUser, UserFilter]):
    model = AppUser
    search_fields = ("username", "email", "full_name", "phone_number")
    sort_fields = {
        "username": "username",
        "email": "email",
        "fullname": "full_name",
        "createdat": "created_at",
        "status": "status",
    }

    def custom_clauses(self, filter: UserFilter) -> List[ColumnElement[bool]]:
        clauses = []
        if filter.role:
            # roles is a JSON array; match the quoted name in its text form
            clauses.append(contains_ci(cast(AppUser.roles, String), f'"{filter.role}"'))
        return clauses
