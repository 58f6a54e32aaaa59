"""Thin per-resource wrappers over RequestPipeline.

Each mutating call names the GET prefixes whose cached results it makes stale.
"""

from typing import Any

from .pipeline import RequestPipeline

USER_PREFIXES = ("/get_user", "/get_current_user")
GROUP_PREFIXES = ("/get_group", "/get_groups")
EXPENSE_PREFIXES = ("/get_expense", "/get_expenses")
FRIEND_PREFIXES = ("/get_friend", "/get_friends")
COMMENT_PREFIXES = ("/get_comments",)


class Resource:
    def __init__(self, pipeline: RequestPipeline):
        self._pipeline = pipeline


class Users(Resource):
    async def get_current_user(self) -> Any:
        return await self._pipeline.get("/get_current_user")

    async def get_user(self, user_id: int) -> Any:
        return await self._pipeline.get(f"/get_user/{user_id}")

    async def update_user(self, user_id: int, body: dict) -> Any:
        return await self._pipeline.post(f"/update_user/{user_id}", body, USER_PREFIXES)


class Groups(Resource):
    async def get_groups(self) -> Any:
        return await self._pipeline.get("/get_groups")

    async def get_group(self, group_id: int) -> Any:
        return await self._pipeline.get(f"/get_group/{group_id}")

    async def create_group(self, body: dict) -> Any:
        return await self._pipeline.post("/create_group", body, GROUP_PREFIXES)

    async def delete_group(self, group_id: int) -> Any:
        return await self._pipeline.post(f"/delete_group/{group_id}", None, GROUP_PREFIXES)

    async def undelete_group(self, group_id: int) -> Any:
        return await self._pipeline.post(f"/undelete_group/{group_id}", None, GROUP_PREFIXES)

    async def add_user_to_group(self, body: dict) -> Any:
        return await self._pipeline.post("/add_user_to_group", body, GROUP_PREFIXES)

    async def remove_user_from_group(self, group_id: int, user_id: int) -> Any:
        return await self._pipeline.post(
            "/remove_user_from_group",
            {"group_id": group_id, "user_id": user_id},
            GROUP_PREFIXES,
        )


class Expenses(Resource):
    async def get_expense(self, expense_id: int) -> Any:
        return await self._pipeline.get(f"/get_expense/{expense_id}")

    async def get_expenses(self, **params) -> Any:
        """List expenses; filters such as group_id, friend_id, dated_after, limit, offset."""
        return await self._pipeline.get("/get_expenses", params or None)

    async def create_expense(self, body: dict) -> Any:
        return await self._pipeline.post("/create_expense", body, EXPENSE_PREFIXES)

    async def update_expense(self, expense_id: int, body: dict) -> Any:
        return await self._pipeline.post(f"/update_expense/{expense_id}", body, EXPENSE_PREFIXES)

    async def delete_expense(self, expense_id: int) -> Any:
        return await self._pipeline.post(f"/delete_expense/{expense_id}", None, EXPENSE_PREFIXES)

    async def undelete_expense(self, expense_id: int) -> Any:
        return await self._pipeline.post(
            f"/undelete_expense/{expense_id}", None, EXPENSE_PREFIXES
        )


class Friends(Resource):
    async def get_friends(self) -> Any:
        return await self._pipeline.get("/get_friends")

    async def get_friend(self, friend_id: int) -> Any:
        return await self._pipeline.get(f"/get_friend/{friend_id}")

    async def create_friend(self, body: dict) -> Any:
        return await self._pipeline.post("/create_friend", body, FRIEND_PREFIXES)

    async def create_friends(self, body: dict) -> Any:
        return await self._pipeline.post("/create_friends", body, FRIEND_PREFIXES)

    async def delete_friend(self, friend_id: int) -> Any:
        return await self._pipeline.post(f"/delete_friend/{friend_id}", None, FRIEND_PREFIXES)


class Comments(Resource):
    async def get_comments(self, expense_id: int) -> Any:
        return await self._pipeline.get("/get_comments", {"expense_id": expense_id})

    async def create_comment(self, body: dict) -> Any:
        return await self._pipeline.post("/create_comment", body, COMMENT_PREFIXES)

    async def delete_comment(self, comment_id: int) -> Any:
        return await self._pipeline.post(f"/delete_comment/{comment_id}", None, COMMENT_PREFIXES)


class Notifications(Resource):
    async def get_notifications(self, **params) -> Any:
        return await self._pipeline.get("/get_notifications", params or None)


class Currencies(Resource):
    async def get_currencies(self) -> Any:
        return await self._pipeline.get("/get_currencies")


class Categories(Resource):
    async def get_categories(self) -> Any:
        return await self._pipeline.get("/get_categories")
