from typing import Dict, Any, Optional

from .constants import COMMENT_CREATE, COMMENT_UPDATE
from .config import element_url
from .errors import OsmSyncError, PublishFailed
from .models import (
    ElementRef, ElementType, Node, Way, PublishResult, PublishState,
    PublishStrategy, SubmissionFields,
)
from ..adapters import osm_api
from ..domain.tags import build_tags_from_fields, merge_tags
from ..utils.log import log_line
from ..utils.time import now_utc

class Publisher:
    """
    Drives one submission through open changeset -> write element -> close changeset.

    The sequence is linear: any failure moves straight to FAILED and the
    whole publish fails. Nothing already done is rolled back. If the write
    fails, the open changeset still gets a close attempt; a failure of that
    close is attached to the PublishFailed but never replaces the write error.
    An element written before a failed close stays written.
    """
    def __init__(self, cfg: Dict[str, Any]):
        self.cfg = cfg
        self.state = PublishState.AWAITING_CHANGESET
        self.changeset_id: Optional[int] = None
        self.element_id: Optional[int] = None

    def _fail(self, cause: Exception, close_error: Optional[Exception] = None) -> PublishFailed:
        failed_in = self.state
        self.state = PublishState.FAILED
        log_line(
            f"PUBLISH | failed | state={failed_in.value} changeset={self.changeset_id} "
            f"element={self.element_id} err={cause}",
            "ERROR",
        )
        return PublishFailed(
            cause,
            state=failed_in,
            changeset_id=self.changeset_id,
            element_id=self.element_id,
            close_error=close_error,
        )

    def _abandon_changeset(self) -> Optional[Exception]:
        """Best-effort close after a failed write. Returns the close error, if any."""
        try:
            osm_api.close_changeset(self.cfg, self.changeset_id)
        except OsmSyncError as e:
            log_line(f"PUBLISH | orphaned changeset left open | id={self.changeset_id} err={e}", "WARN")
            return e
        return None

    def publish(
        self,
        fields: SubmissionFields,
        strategy: PublishStrategy = PublishStrategy.CREATE,
        target: Optional[ElementRef] = None,
        comment: Optional[str] = None,
    ) -> PublishResult:
        if self.state is not PublishState.AWAITING_CHANGESET:
            raise RuntimeError("a Publisher runs exactly one publish")

        try:
            strategy = PublishStrategy(strategy)
            target = self._validate(fields, strategy, target)
        except ValueError as e:
            raise self._fail(e) from e

        tags = build_tags_from_fields(fields)
        if comment is None:
            comment = COMMENT_UPDATE if strategy is PublishStrategy.UPDATE else COMMENT_CREATE

        # 1. open changeset
        try:
            self.changeset_id = osm_api.open_changeset(self.cfg, comment)
        except OsmSyncError as e:
            raise self._fail(e) from e
        self.state = PublishState.CHANGESET_OPEN

        # 2. write element
        try:
            if strategy is PublishStrategy.CREATE:
                element_type, version = self._create(fields, tags)
            else:
                element_type, version = self._update(target, tags)
        except OsmSyncError as e:
            close_error = self._abandon_changeset()
            raise self._fail(e, close_error) from e
        self.state = PublishState.ELEMENT_WRITTEN

        # 3. close changeset
        try:
            osm_api.close_changeset(self.cfg, self.changeset_id)
        except OsmSyncError as e:
            raise self._fail(e) from e
        self.state = PublishState.CLOSED

        if strategy is PublishStrategy.UPDATE and self.cfg.get("confirm_version"):
            version = self._confirmed_version(element_type, version)

        result = PublishResult(
            element_id=self.element_id,
            element_type=element_type,
            element_url=element_url(self.cfg, element_type.value, self.element_id),
            final_version=version,
            changeset_id=self.changeset_id,
            uploaded_at=now_utc(),
        )
        log_line(
            f"PUBLISH | ok | {strategy.value} {element_type.value}/{self.element_id} "
            f"version={version} changeset={self.changeset_id}"
        )
        return result

    @staticmethod
    def _validate(fields: SubmissionFields, strategy: PublishStrategy,
                  target: Optional[ElementRef]) -> Optional[ElementRef]:
        """Checks everything a publish needs before the changeset opens; returns the normalised target."""
        if strategy is PublishStrategy.UPDATE:
            if target is None:
                raise ValueError("update needs a target element")
            try:
                target = ElementRef(id=int(target.id), type=ElementType(target.type))
            except (TypeError, ValueError) as e:
                raise ValueError(f"invalid update target {target!r}: only nodes and ways can be updated") from e
            if target.id <= 0:
                raise ValueError(f"invalid update target id: {target.id}")
            return target
        if fields.latitude is None or fields.longitude is None:
            raise ValueError("create needs latitude and longitude")
        if not (-90.0 <= fields.latitude <= 90.0 and -180.0 <= fields.longitude <= 180.0):
            raise ValueError(f"coordinates out of range: {fields.latitude}, {fields.longitude}")
        return None

    def _create(self, fields: SubmissionFields, tags: Dict[str, str]):
        node = Node(lat=fields.latitude, lon=fields.longitude, tags=tags)
        self.element_id = osm_api.create_node(self.cfg, node, self.changeset_id)
        return ElementType.NODE, 1

    def _update(self, target: ElementRef, tags: Dict[str, str]):
        element_type = target.type
        if element_type is ElementType.WAY:
            way = osm_api.fetch_way(self.cfg, target.id)
            update = Way(tags=merge_tags(way.tags, tags), node_refs=list(way.node_refs))
            osm_api.update_way(self.cfg, way.id, update, way.version, self.changeset_id)
            self.element_id, version = way.id, way.version
        else:
            node = osm_api.fetch_node(self.cfg, target.id)
            update = Node(lat=node.lat, lon=node.lon, tags=merge_tags(node.tags, tags))
            osm_api.update_node(self.cfg, node.id, update, node.version, self.changeset_id)
            self.element_id, version = node.id, node.version
        # Server bumps the version on a successful write; not re-fetched here.
        return element_type, version + 1

    def _confirmed_version(self, element_type: ElementType, assumed: int) -> int:
        try:
            element = osm_api.fetch_element(self.cfg, element_type, self.element_id)
        except OsmSyncError as e:
            log_line(f"PUBLISH | version re-fetch failed, keeping assumed | version={assumed} err={e}", "WARN")
            return assumed
        return element.version

def publish(
    cfg: Dict[str, Any],
    fields: SubmissionFields,
    strategy: PublishStrategy = PublishStrategy.CREATE,
    target: Optional[ElementRef] = None,
    comment: Optional[str] = None,
) -> PublishResult:
    return Publisher(cfg).publish(fields, strategy, target, comment)
