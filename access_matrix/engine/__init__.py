"""
In-memory state engine for the access-control matrix editors.
"""
from access_matrix.engine.aggregate import GroupStatus, TriState, TriStateAggregator  # noqa: F401
from access_matrix.engine.editors import (  # noqa: F401
    DirectPermissionEditor,
    RolePermissionEditor,
    RouteAccessEditor,
    UserRoleEditor,
)
from access_matrix.engine.errors import (  # noqa: F401
    GatewayError,
    LockedPermissionError,
    MatrixError,
    SaveInProgressError,
    UnknownEntityError,
)
from access_matrix.engine.gateway import CommitGateway, CommitResult, HttpCommitGateway  # noqa: F401
from access_matrix.engine.grouping import ExpansionState, Group, category_of  # noqa: F401
from access_matrix.engine.relation import Baseline, RelationStore  # noqa: F401
from access_matrix.engine.resolver import CommonSubsetResolver  # noqa: F401
from access_matrix.engine.tracker import ChangeTracker  # noqa: F401
