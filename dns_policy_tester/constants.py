# dns_policy_tester/constants.py
# Version: 1.0.0
# Routing-policy tester constants - all tunable values in one place

"""
DNS Policy Tester Constants

All hardcoded values are defined here at the top of the module for easy
visibility and modification. The tolerance values were chosen empirically
and are exposed through the configuration file as defaults only.
"""

# =============================================================================
# RESOLUTION SETTINGS
# =============================================================================
DIG_COMMAND = "dig"  # External lookup tool
DIG_QUERY_TIMEOUT = 5.0  # Seconds to wait for a single dig invocation
DIG_DIAGNOSTIC_TIMEOUT = 10.0  # Seconds for the multi-step diagnostic queries
SYSTEM_RESOLVER_LABEL = "System Default"  # Resolver override meaning "no override"
TWISTED_QUERY_TIMEOUT = 5.0  # Timeout for twisted.names lookups

# Well-known public resolvers used for cross-resolver comparison
GEOLOCATION_COMPARISON_RESOLVERS = ("8.8.8.8", "1.1.1.1", "208.67.222.222")
LATENCY_COMPARISON_RESOLVERS = ("8.8.8.8", "1.1.1.1", "9.9.9.9")

# Diagnostic query names
RESOLVER_IDENTITY_NAME = "resolver-identity.cloudfront.net"
MYADDR_TXT_NAME = "o-o.myaddr.l.google.com"
RESOLVER_IDENTITY_ROUNDS = 5  # Queries used to detect resolver rotation
RESOLVER_IDENTITY_DELAY = 2.0  # Seconds between resolver-identity queries
ANYCAST_PROBE_ROUNDS = 5
ANYCAST_PROBE_DELAY = 1.0
CLIENT_SUBNET_PREFIX = 24  # Prefix length sent as the client-subnet hint
FRESH_RESPONSE_TTL = 60  # TTL that indicates an uncached authoritative answer
DEFAULT_RECORD_TTL = 300  # TTL reported when none could be parsed
FALLBACK_NAME_SERVERS = ("ns-1.awsdns-01.com.",)

# =============================================================================
# WEIGHTED ROUTING
# =============================================================================
HIGH_VOLUME_THRESHOLD = 5000  # Iterations above this switch to the high-volume path
HIGH_VOLUME_STRICT_THRESHOLD = 10000  # Iterations above this tighten the tolerance

DEFAULT_TOLERANCE = 0.15  # Standard path tolerance (15%)
HIGH_VOLUME_TOLERANCE = 0.10  # High-volume tolerance (10%)
HIGH_VOLUME_STRICT_TOLERANCE = 0.05  # High-volume tolerance above 10k queries (5%)

# Inter-query delays in seconds, shrinking as the iteration count grows
STANDARD_DELAY_SMALL = 0.100  # <= 1000 iterations
STANDARD_DELAY_MEDIUM = 0.020  # > 1000 iterations; the high-volume path takes over above 5000
HIGH_VOLUME_DELAY = 0.005  # high-volume path, <= 10000 iterations
HIGH_VOLUME_STRICT_DELAY = 0.001  # high-volume path, > 10000 iterations
SMALL_RUN_LIMIT = 1000

RAW_SAMPLE_SIZE = 10  # Raw per-query lines kept for the report
RESPONSE_SAMPLE_LIMIT = 100000  # Maximum latency samples kept per run

# Compliance classification thresholds (fractions)
COMPLIANT_THRESHOLD = 0.05
PARTIALLY_COMPLIANT_THRESHOLD = 0.15

# =============================================================================
# GEOLOCATION / VANTAGE POINTS
# =============================================================================
DEFAULT_VANTAGE_ROUNDS = 3
VANTAGE_SETTLE_DELAY = 2.0  # Seconds to let a new circuit establish
TOR_SOCKS_HOST = "127.0.0.1"
TOR_SOCKS_PORT = 9050
TOR_CONTROL_PORT = 9051
TOR_CHECK_URL = "https://check.torproject.org/api/ip"
TOR_SOCKET_TIMEOUT = 10.0

GEOLOCATION_URL = "https://ipapi.co/{ip}/json/"
PUBLIC_IP_SERVICES = (
    "https://api.ipify.org",
    "https://ifconfig.me/ip",
    "https://icanhazip.com",
)
HTTP_TIMEOUT = 5.0
UNKNOWN_LOCATION = "Unknown location"
UNKNOWN_PUBLIC_IP = "unknown"

# =============================================================================
# PROBES
# =============================================================================
PING_COMMAND = "ping"
PING_COUNT = 3
PING_TIMEOUT = 10.0
REACHABILITY_TIMEOUT = 5.0
REACHABILITY_PORTS = (443, 80)  # TCP ports tried when checking reachability
UNREACHABLE_LATENCY_MS = -1  # Reported latency when nothing answered

# Record health status thresholds (milliseconds)
HEALTHY_LATENCY_MS = 1000
SLOW_LATENCY_MS = 5000

# =============================================================================
# DISCOVERY
# =============================================================================
# Variants for subdomains such as api.example.com
SUBDOMAIN_SUFFIX_PATTERNS = ("-backup", "-failover", "-secondary", "2")
SUBDOMAIN_PREFIX_PATTERNS = ("backup-", "failover-", "secondary-", "bak-")
SUBDOMAIN_TRAILING_PATTERNS = ("-dr", "-hot", "-standby")

# Whole-domain variants for apex domains such as example.com
APEX_PATTERNS = (
    "backup",
    "failover",
    "secondary",
    "www-backup",
    "www2",
    "dr",
    "standby",
    "hot",
    "fallback",
    "mirror",
)

BACKUP_KEYWORDS = (
    "backup",
    "failover",
    "secondary",
    "standby",
    "dr",
    "hot",
    "fallback",
    "mirror",
    "bak-",
)

ROLE_PRIMARY = "Primary (main domain)"
ROLE_SECONDARY = "Secondary (backup subdomain)"
ROLE_UNASSIGNED = "Unassigned (related subdomain)"

# =============================================================================
# ENGINE
# =============================================================================
DEFAULT_WORKER_THREADS = 4
MIN_WORKER_THREADS = 1
MAX_WORKER_THREADS = 32
DEFAULT_ITERATIONS = 100
MIN_ENDPOINT_WEIGHT = 0
MAX_ENDPOINT_WEIGHT = 1000

# =============================================================================
# LOGGING
# =============================================================================
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# =============================================================================
# METRICS
# =============================================================================
METRICS_DEFAULT_PORT = 9153
