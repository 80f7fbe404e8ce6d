from typing import Optional
from sqlalchemy.orm import Session
from opsdesk.models.models import Client


def _tenant_clients(db: Session, company_id: int):
    return db.query(Client).filter(Client.company_id == company_id, Client.is_deleted == False)


def find_client(db: Session, company_id: int, client_id: int) -> Optional[Client]:
    return _tenant_clients(db, company_id).filter(Client.id == client_id).first()


def find_client_by_owner(db: Session, company_id: int, user_id: int) -> Optional[Client]:
    return _tenant_clients(db, company_id).filter(Client.owner_id == user_id).order_by(Client.id).first()


def resolve_client(db: Session, company_id: int, value: int) -> Optional[Client]:
    """Client portals send their user id where a client id is expected.

    A direct client id match wins; otherwise the client owned by that user.
    """
    return find_client(db, company_id, value) or find_client_by_owner(db, company_id, value)
