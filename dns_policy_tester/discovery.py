# dns_policy_tester/discovery.py
# Version: 1.0.0
# A-record discovery and primary/secondary designation

"""
A-Record Discovery

Resolves a domain and its conventional failover-subdomain variants,
classifies every address, probes it, and suggests a role. Records live in a
DiscoverySet that owns a single DesignationState, so at most one record can
be primary and one secondary at any time.
"""

import logging
import re
from typing import Iterator, List, Optional, Sequence

from .classification import AddressClassifier
from .constants import (
    APEX_PATTERNS,
    BACKUP_KEYWORDS,
    DEFAULT_RECORD_TTL,
    REACHABILITY_TIMEOUT,
    ROLE_PRIMARY,
    ROLE_SECONDARY,
    ROLE_UNASSIGNED,
    SUBDOMAIN_PREFIX_PATTERNS,
    SUBDOMAIN_SUFFIX_PATTERNS,
    SUBDOMAIN_TRAILING_PATTERNS,
    UNREACHABLE_LATENCY_MS,
)
from .models import DesignationState, DiscoveredARecord
from .probes import LatencyProbe, ReachabilityProbe
from .resolution import DigResolver, Resolver, SystemResolver

logger = logging.getLogger(__name__)

DIGIT_BEFORE_DOT = re.compile(r"\d\.")


def generate_candidate_domains(domain: str) -> List[str]:
    """
    The domain itself followed by its failover-style variants.

    For api.example.com the leaf label is varied (api-backup.example.com,
    backup-api.example.com, ...). For example.com whole-name variants are used
    (backup.example.com, www2.example.com, ...).
    """
    domain = domain.strip().lower().rstrip(".")
    candidates = [domain]
    labels = domain.split(".")

    if len(labels) >= 3:
        leaf, parent = labels[0], ".".join(labels[1:])
        variants = [f"{leaf}{suffix}" for suffix in SUBDOMAIN_SUFFIX_PATTERNS]
        variants += [f"{prefix}{leaf}" for prefix in SUBDOMAIN_PREFIX_PATTERNS]
        variants += [f"{leaf}{suffix}" for suffix in SUBDOMAIN_TRAILING_PATTERNS]
        candidates += [f"{variant}.{parent}" for variant in variants]
    elif len(labels) == 2:
        candidates += [f"{pattern}.{domain}" for pattern in APEX_PATTERNS]

    return candidates


def is_backup_subdomain(domain: str) -> bool:
    """True if the name looks like a backup/failover host"""
    name = domain.lower()
    if any(keyword in name for keyword in BACKUP_KEYWORDS):
        return True
    return DIGIT_BEFORE_DOT.search(name) is not None


def suggest_role(candidate: str, domain: str) -> str:
    if candidate == domain.strip().lower().rstrip("."):
        return ROLE_PRIMARY
    if is_backup_subdomain(candidate):
        return ROLE_SECONDARY
    return ROLE_UNASSIGNED


class DiscoverySet:
    """Records from one discovery batch plus their designation state"""

    def __init__(self, domain: str, records: Sequence[DiscoveredARecord] = ()):
        self.domain = domain
        self.designation = DesignationState()
        self._records: List[DiscoveredARecord] = []
        for record in records:
            self.add(record)

    def add(self, record: DiscoveredARecord):
        record._designation = self.designation
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[DiscoveredARecord]:
        return iter(self._records)

    def __getitem__(self, index: int) -> DiscoveredARecord:
        return self._records[index]

    def get(self, record_id: str) -> Optional[DiscoveredARecord]:
        for record in self._records:
            if record.record_id == record_id:
                return record
        return None

    def _check_member(self, record: DiscoveredARecord):
        if self.get(record.record_id) is not record:
            raise ValueError(f"Record {record.ip_address} does not belong to this discovery set")

    @property
    def primary(self) -> Optional[DiscoveredARecord]:
        return self.get(self.designation.primary_id) if self.designation.primary_id else None

    @property
    def secondary(self) -> Optional[DiscoveredARecord]:
        return self.get(self.designation.secondary_id) if self.designation.secondary_id else None

    def set_primary(self, record: DiscoveredARecord):
        """Make record the only primary; it stops being secondary if it was"""
        self._check_member(record)
        if self.designation.secondary_id == record.record_id:
            self.designation.secondary_id = None
        self.designation.primary_id = record.record_id
        logger.info(f"Primary set to {record.ip_address} ({record.source_domain})")

    def set_secondary(self, record: DiscoveredARecord):
        """Make record the only secondary; it stops being primary if it was"""
        self._check_member(record)
        if self.designation.primary_id == record.record_id:
            self.designation.primary_id = None
        self.designation.secondary_id = record.record_id
        logger.info(f"Secondary set to {record.ip_address} ({record.source_domain})")

    def clear_designation(self, record: Optional[DiscoveredARecord] = None):
        """Clear record's role, or every role when record is None"""
        if record is None:
            self.designation.primary_id = None
            self.designation.secondary_id = None
            return
        self._check_member(record)
        if self.designation.primary_id == record.record_id:
            self.designation.primary_id = None
        if self.designation.secondary_id == record.record_id:
            self.designation.secondary_id = None

    def auto_designate(self):
        """Pick primary/secondary from the suggested roles and reachability"""
        records = self._records
        if not records:
            return
        if len(records) == 1:
            self.set_primary(records[0])
            return

        primaries = [r for r in records if r.suggested_role == ROLE_PRIMARY]
        secondaries = [r for r in records if r.suggested_role == ROLE_SECONDARY]

        if len(primaries) == 1 and len(secondaries) == 1:
            self.set_primary(primaries[0])
            self.set_secondary(secondaries[0])
        elif primaries:
            primary = primaries[0]
            self.set_primary(primary)
            for record in records:
                if record is not primary and record.reachable:
                    self.set_secondary(record)
                    break
        else:
            reachable = [r for r in records if r.reachable]
            if len(reachable) >= 2:
                self.set_primary(reachable[0])
                self.set_secondary(reachable[1])

        logger.info(
            f"Auto-designation for {self.domain}: primary={self.primary and self.primary.ip_address}, "
            f"secondary={self.secondary and self.secondary.ip_address}"
        )


class ARecordDiscovery:
    """Find the A records behind a domain and its failover variants"""

    def __init__(
        self,
        dig: Optional[DigResolver] = None,
        fallback: Optional[Resolver] = None,
        classifier: Optional[AddressClassifier] = None,
        reachability: Optional[ReachabilityProbe] = None,
        latency: Optional[LatencyProbe] = None,
        reachability_timeout: float = REACHABILITY_TIMEOUT,
    ):
        self.dig = dig or DigResolver()
        self.fallback = fallback or SystemResolver(self.dig)
        self.classifier = classifier or AddressClassifier()
        self.reachability = reachability or ReachabilityProbe()
        self.latency = latency or LatencyProbe(self.reachability)
        self.reachability_timeout = reachability_timeout

    def lookup(self, candidate: str):
        """Addresses and TTL for candidate; dig short, dig full, then host resolution"""
        outcome = self.dig.resolve(candidate)
        if outcome.ok:
            return outcome.addresses, DEFAULT_RECORD_TTL

        answer = self.dig.query_full(candidate)
        if answer.addresses:
            return answer.addresses, answer.ttl

        if answer.error:
            # dig itself failed, not just an empty answer
            host = self.fallback.resolve(candidate)
            if host.ok:
                logger.debug(f"{candidate} resolved through host fallback")
                return host.addresses, DEFAULT_RECORD_TTL
        return [], DEFAULT_RECORD_TTL

    def probe(self, ip: str, source_domain: str, ttl: int, role: str) -> DiscoveredARecord:
        classification = self.classifier.classify(ip)
        reachable = self.reachability.is_reachable(ip, self.reachability_timeout)
        latency = self.latency.measure_latency(ip) if reachable else UNREACHABLE_LATENCY_MS
        return DiscoveredARecord(
            ip_address=ip,
            source_domain=source_domain,
            cloud_provider=classification.provider,
            aws_region=classification.region,
            endpoint_name=classification.endpoint_id,
            ttl=ttl,
            reachable=reachable,
            response_time_ms=latency,
            suggested_role=role,
        )

    def discover(self, domain: str, token=None, auto_designate: bool = True) -> DiscoverySet:
        """Resolve and probe every candidate of domain"""
        result = DiscoverySet(domain)
        candidates = generate_candidate_domains(domain)
        logger.info(f"Discovering A records for {domain} across {len(candidates)} candidates")

        for candidate in candidates:
            if token is not None and token.cancelled:
                logger.info(f"Discovery for {domain} cancelled")
                break
            addresses, ttl = self.lookup(candidate)
            if not addresses:
                continue
            role = suggest_role(candidate, domain)
            for ip in addresses:
                record = self.probe(ip, candidate, ttl, role)
                result.add(record)
                logger.info(f"Found {record}")

        if auto_designate:
            result.auto_designate()
        logger.info(f"Discovery for {domain} found {len(result)} records")
        return result
