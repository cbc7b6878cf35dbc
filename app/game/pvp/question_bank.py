from __future__ import annotations

SYSTEM_DESIGN_QUESTION_BANK: tuple[dict[str, object], ...] = (
    {
        "prompt": "Which cache write policy keeps the cache and the database consistent on every write?",
        "choices": ["Write-through", "Write-back", "Write-around", "Read-through"],
        "correct_choice_index": 0,
        "explanation": "Write-through updates the cache and the backing store in the same operation.",
    },
    {
        "prompt": "What does a message queue primarily add between a producer and a consumer?",
        "choices": [
            "Strong consistency",
            "Temporal decoupling and buffering",
            "Lower storage costs",
            "Automatic schema migrations",
        ],
        "correct_choice_index": 1,
        "explanation": "Queues let producers and consumers run at different rates and times.",
    },
    {
        "prompt": "Which technique spreads keys across nodes so that adding a node moves few keys?",
        "choices": ["Range partitioning", "Round robin", "Consistent hashing", "Vertical scaling"],
        "correct_choice_index": 2,
        "explanation": "Consistent hashing remaps only the keys adjacent to the new node on the ring.",
    },
    {
        "prompt": "In the CAP theorem, what must a system give up during a network partition?",
        "choices": [
            "Durability or latency",
            "Consistency or availability",
            "Partition tolerance or durability",
            "Throughput or latency",
        ],
        "correct_choice_index": 1,
        "explanation": "Under a partition a system chooses between consistent and available responses.",
    },
    {
        "prompt": "What makes a retried HTTP request safe to apply more than once?",
        "choices": ["TLS", "Idempotency", "Compression", "Keep-alive"],
        "correct_choice_index": 1,
        "explanation": "An idempotent operation has the same effect no matter how often it is applied.",
    },
    {
        "prompt": "Which replication setup lets every replica accept writes?",
        "choices": ["Leader-follower", "Multi-leader", "Read replicas", "Log shipping"],
        "correct_choice_index": 1,
        "explanation": "Multi-leader replication accepts writes on several nodes and reconciles conflicts.",
    },
    {
        "prompt": "What is the main purpose of a database index?",
        "choices": [
            "Compress rows on disk",
            "Speed up lookups at the cost of extra writes",
            "Encrypt columns",
            "Replicate data across regions",
        ],
        "correct_choice_index": 1,
        "explanation": "Indexes trade additional write work and storage for faster reads.",
    },
    {
        "prompt": "Which pattern stops a failing downstream service from being called repeatedly?",
        "choices": ["Bulkhead", "Sidecar", "Circuit breaker", "Strangler fig"],
        "correct_choice_index": 2,
        "explanation": "A circuit breaker opens after repeated failures and fails fast until recovery.",
    },
    {
        "prompt": "What does optimistic concurrency control do when it detects a conflicting write?",
        "choices": [
            "Blocks until the other writer finishes",
            "Aborts and retries the transaction",
            "Silently overwrites the other write",
            "Escalates to a table lock",
        ],
        "correct_choice_index": 1,
        "explanation": "Optimistic schemes validate at commit time and retry on version mismatch.",
    },
    {
        "prompt": "Which load-balancing strategy sends a client to the server with the fewest open connections?",
        "choices": ["Round robin", "IP hash", "Least connections", "Random"],
        "correct_choice_index": 2,
        "explanation": "Least-connections routing favours the currently least busy backend.",
    },
)
