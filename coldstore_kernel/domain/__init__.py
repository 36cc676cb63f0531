"""Pure domain layer: value types, DTOs, fulfillment rules and clocks."""
