"""Pure domain vocabulary: clock, value enums and DTOs."""
