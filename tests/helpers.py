"""
Input builders shared across test modules.
"""

from core.primitives import CommentData, PublicationData


def analogy_data(title: str = "T", authors=("Ada",), links=(), content: str = "An analogy body") -> PublicationData:
    return PublicationData(title=title, content=content, authors=set(authors), links=set(links))


def comment_data(user_name: str = "ada", content: str = "hello", email: str = "a@x.com", parent_id=None) -> CommentData:
    return CommentData(user_name=user_name, content=content, email=email, parent_id=parent_id)
