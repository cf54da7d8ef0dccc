from dotenv import load_dotenv

from phiguard import GateConfig, GateContext, PolicyGate, get_storage


load_dotenv()

# Audit trail in a local SQLite file (use "memory://" for a throwaway one)
store = get_storage("sqlite:///phiguard_audit.db")
gate = PolicyGate(store=store, config=GateConfig.from_env())

# Screen a user message before it goes to the external model
verdict = gate.submit(
    "Contact insurance provider for patient id 123456789",
    GateContext(actor_id="dr-house"),
)

print(verdict.to_summary())
print(verdict.sanitized_content)

# Screen a whole chat transcript; only user messages are checked by default
batch = gate.submit_messages(
    [
        {"role": "system", "content": "You are a clinical research assistant."},
        {"role": "user", "content": "Summarize the family history for 123-45-6789"},
    ],
    GateContext(actor_id="dr-house"),
)
print(batch.messages)

# Record a clinical data fetch
gate.authorize_access("dr-house", "BeakerReport", "patient-42", details={"method": "GET"})

# Read back and verify the audit trail
for event in gate.query_audit(actor_id="dr-house"):
    print(event.event_id, event.action.value, event.resource_type, event.resource_id)

print(gate.verify_audit().message)
