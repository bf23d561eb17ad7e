"""Itinerary prompt rendering.

The rendered text is sent verbatim to the generation backend, and the markdown
layout it asks for (per-day sections, budget table, tips) is what the trip
viewer parses for display. Keep it pure: same request, same bytes.
"""

from app.schemas.trip import GenerationRequest

ITINERARY_PROMPT = """Create a comprehensive {days}-day vacation itinerary with a budget of ${budget} USD.

Traveler's interests: {interests}

Provide a detailed response with specific recommendations. Structure your response EXACTLY like this markdown format:

# 🌴 Your {days}-Day Adventure

## Day 1: [Day Title]

### Morning
- **Activity:** [Specific activity with location]
- **Cost:** $XX
- **Tips:** [Quick insider tip]

### Afternoon
- **Lunch:** [Restaurant name]
- **Cost:** $XX
- **Activity:** [Main afternoon activity]
- **Cost:** $XX

### Evening
- **Dinner:** [Restaurant recommendation]
- **Cost:** $XX
- **Activity:** [Evening plan]
- **Cost:** $XX

### Accommodation
- **Hotel:** [Hotel name and area]
- **Cost:** $XX/night

**Day 1 Total: $XXX**

---

[Repeat format for all {days} days]

---

## 💰 Budget Breakdown

| Category | Amount |
|----------|--------|
| Accommodation | $XXX |
| Food & Dining | $XXX |
| Activities | $XXX |
| Transportation | $XXX |
| **Total** | **$XXX** |

## 💡 Money-Saving Tips
- [3-4 practical tips]

## 📝 Travel Essentials
- [What to pack and prepare]

Make each recommendation specific with actual names and prices!"""


def format_amount(value: int | float) -> str:
    """1500 and 1500.0 both render as ``1500``; fractional budgets keep their digits."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_itinerary_prompt(request: GenerationRequest) -> str:
    return ITINERARY_PROMPT.format(
        days=request.days,
        budget=format_amount(request.budget),
        interests=request.interests,
    )
