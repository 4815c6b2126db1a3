from functools import lru_cache

from fastapi import Depends

from academy_sync.config import settings
from academy_sync.database import get_session_factory
from academy_sync.repositories.collection_set import CollectionSet
from academy_sync.services.cascade_service import CascadeService
from academy_sync.services.enrollment_service import EnrollmentService
from academy_sync.services.membership_service import MembershipService
from academy_sync.services.roster_reconciliation_service import RosterReconciliationService


@lru_cache
def get_collections() -> CollectionSet:
    """
    FastAPI dependency for the collection handles.

    Resolved once per process; the app's lifespan calls it at startup so
    configuration errors surface before the first request.
    """
    return CollectionSet.build(get_session_factory(), disabled=settings.disabled_collections_list)


def get_cascade_service(collections: CollectionSet = Depends(get_collections)) -> CascadeService:
    return CascadeService(collections)


def get_membership_service(collections: CollectionSet = Depends(get_collections)) -> MembershipService:
    return MembershipService(collections.students, collections.cohorts)


def get_reconciliation_service(
    collections: CollectionSet = Depends(get_collections),
) -> RosterReconciliationService:
    return RosterReconciliationService(collections.students, collections.cohorts)


def get_enrollment_service(collections: CollectionSet = Depends(get_collections)) -> EnrollmentService:
    return EnrollmentService(collections.courses, collections.cohorts, collections.students)
