"""Tests for the quick-reply tag parser and keyword heuristic."""

from quotecat.wizard.quick_replies import parse_quick_replies, suggest


class TestParseQuickReplies:
    def test_tag_is_extracted_and_stripped(self):
        text = 'What amperage is the panel?\n\n[QUICK_REPLIES: "100A", "150A", \'200A\']'
        clean, replies = parse_quick_replies(text)
        assert clean == "What amperage is the panel?"
        assert replies == ["100A", "150A", "200A"]

    def test_no_tag(self):
        assert parse_quick_replies("Plain reply") == ("Plain reply", None)

    def test_tag_without_quoted_options(self):
        clean, replies = parse_quick_replies("Hi [QUICK_REPLIES: none]")
        assert clean == "Hi"
        assert replies is None

    def test_capped_at_four(self):
        _, replies = parse_quick_replies('[QUICK_REPLIES: "a", "b", "c", "d", "e"]')
        assert replies == ["a", "b", "c", "d"]


class TestSuggest:
    def test_budget(self):
        assert suggest("What finish level are you going for?") == ["Budget", "Standard", "Premium"]

    def test_dimensions(self):
        assert suggest("Roughly how many square feet is the floor?")[0].startswith("Small")

    def test_scope(self):
        assert suggest("Is this a full remodel or just a refresh?") == [
            "Full remodel",
            "Cosmetic refresh",
            "Partial update",
        ]

    def test_preference_sub_rules(self):
        assert "Porcelain" in suggest("Do you prefer a particular tile?")
        assert "Brushed nickel" in suggest("Which faucet style do you prefer?")
        assert "Neutral" in suggest("Any color preference for the walls?")
        assert "Vinyl plank" in suggest("What flooring do you prefer?")
        assert "Semi-custom" in suggest("Any preference on cabinet grade?")
        assert suggest("Any preference there?") == ["Show me options", "No preference"]

    def test_confirmation(self):
        assert suggest("Added the grout. Does that look good?") == ["Yes", "No", "Make changes"]

    def test_project_type(self):
        assert suggest("What kind of project are we quoting?") == ["Bathroom", "Kitchen", "Deck", "Other"]

    def test_follow_up(self):
        assert suggest("Anything else for this job?") == ["That's everything", "Add more items"]

    def test_labor(self):
        assert suggest("How many labor hours do you figure?") == ["Use my default rate", "Skip labor"]

    def test_first_match_wins(self):
        # budget outranks labor
        assert suggest("What's the budget, and how many hours?") == ["Budget", "Standard", "Premium"]

    def test_no_match(self):
        assert suggest("Got it.") == []
        assert suggest("") == []

    def test_deterministic_and_bounded(self):
        text = "Which tile style do you prefer?"
        first = suggest(text)
        assert first == suggest(text)
        assert 0 < len(first) <= 4
