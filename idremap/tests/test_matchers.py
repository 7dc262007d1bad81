from idremap.services.remapping import (
    EntityPathMatcher,
    Matcher,
    QueryStringMatcher,
    QuotedLiteralMatcher,
    default_matchers,
)
from idremap.tests import (
    BaseTest,
    NEW_ID_A,
    NEW_ID_B,
    OLD_ID_A,
    OLD_ID_B,
    OLD_ID_C,
)


class TestQuotedLiteralMatcher(BaseTest):
    def setUp(self):
        super().setUp()
        self.matcher = QuotedLiteralMatcher(self.settings)

    def test_replaces_quoted_identifier(self):
        line = f"INSERT INTO `note` VALUES ('{OLD_ID_A}','hello');\n"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(
            f"INSERT INTO `note` VALUES ('{NEW_ID_A}','hello');\n", result.line
        )
        self.assertEqual(1, result.replaced)
        self.assertEqual(0, result.unmapped)

    def test_replaces_every_occurrence(self):
        line = f"('{OLD_ID_A}','{OLD_ID_B}','{OLD_ID_A}')"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(f"('{NEW_ID_A}','{NEW_ID_B}','{NEW_ID_A}')", result.line)
        self.assertEqual(3, result.replaced)

    def test_unmapped_identifier_is_kept_and_counted(self):
        line = f"('{OLD_ID_C}','{OLD_ID_A}')"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(f"('{OLD_ID_C}','{NEW_ID_A}')", result.line)
        self.assertEqual(1, result.replaced)
        self.assertEqual(1, result.unmapped)

    def test_wrong_width_is_ignored(self):
        too_long = OLD_ID_A + "b"
        too_short = OLD_ID_A[:-1]
        line = f"('{too_long}','{too_short}')"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(line, result.line)
        self.assertEqual(0, result.replaced)
        self.assertEqual(0, result.unmapped)

    def test_decimal_token_counted_as_numeric(self):
        line = f"('12345678901234567','{OLD_ID_C}')"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(line, result.line)
        self.assertEqual(1, result.numeric)
        self.assertEqual(1, result.unmapped)

    def test_characters_outside_alphabet_are_ignored(self):
        line = "('A1B2C3D4E5F60718A','g1b2c3d4e5f60718a')"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(line, result.line)
        self.assertEqual(0, result.unmapped)


class TestEntityPathMatcher(BaseTest):
    def setUp(self):
        super().setUp()
        self.matcher = EntityPathMatcher(self.settings)

    def test_replaces_identifier_in_view_path(self):
        line = f"'<a href=\"/#Account/view/{OLD_ID_A}\">Acme</a>'"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(
            f"'<a href=\"/#Account/view/{NEW_ID_A}\">Acme</a>'", result.line
        )
        self.assertEqual(1, result.replaced)

    def test_longer_token_is_ignored(self):
        line = f"/#Account/view/{OLD_ID_A}0"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(line, result.line)
        self.assertEqual(0, result.replaced)

    def test_other_actions_are_ignored(self):
        line = f"/#Account/edit/{OLD_ID_A}"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(line, result.line)

    def test_configured_actions(self):
        matcher = EntityPathMatcher(
            self.with_settings(path_actions=("view", "edit"))
        )
        line = f"/#Account/edit/{OLD_ID_A} /#Contact/view/{OLD_ID_B}"

        result = matcher.find_and_replace(line, self.store)

        self.assertEqual(
            f"/#Account/edit/{NEW_ID_A} /#Contact/view/{NEW_ID_B}", result.line
        )
        self.assertEqual(2, result.replaced)


class TestQueryStringMatcher(BaseTest):
    def setUp(self):
        super().setUp()
        self.matcher = QueryStringMatcher(self.settings)

    def test_replaces_escaped_ampersand_parameter(self):
        line = f"'?entryPoint=download&amp;id={OLD_ID_A}'"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(f"'?entryPoint=download&amp;id={NEW_ID_A}'", result.line)
        self.assertEqual(1, result.replaced)

    def test_replaces_plain_delimiters(self):
        line = f"?id={OLD_ID_A}&parentId={OLD_ID_B}"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(f"?id={NEW_ID_A}&parentId={NEW_ID_B}", result.line)
        self.assertEqual(2, result.replaced)

    def test_numeric_entity_delimiter(self):
        line = f"download&#38;id={OLD_ID_A}"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(f"download&#38;id={NEW_ID_A}", result.line)

    def test_longer_value_is_ignored(self):
        line = f"&amp;id={OLD_ID_A}ff"

        result = self.matcher.find_and_replace(line, self.store)

        self.assertEqual(line, result.line)
        self.assertEqual(0, result.unmapped)

    def test_configured_parameter_names(self):
        matcher = QueryStringMatcher(
            self.with_settings(query_string_parameters=("id",))
        )
        line = f"&amp;id={OLD_ID_A}&amp;parentId={OLD_ID_B}"

        result = matcher.find_and_replace(line, self.store)

        self.assertEqual(f"&amp;id={NEW_ID_A}&amp;parentId={OLD_ID_B}", result.line)


class TestDefaultMatchers(BaseTest):
    def test_base_matcher_is_abstract(self):
        with self.assertRaises(TypeError):
            Matcher(self.settings)

    def test_order(self):
        names = [m.name for m in default_matchers(self.settings)]

        self.assertEqual(["quoted", "path", "query"], names)

    def test_all_surfaces_on_one_line(self):
        line = (
            f"('{OLD_ID_A}','<a href=\"/#Account/view/{OLD_ID_B}\">x</a>',"
            f"'?entryPoint=download&amp;id={OLD_ID_C}')\n"
        )
        replaced = 0
        unmapped = 0
        for matcher in default_matchers(self.settings):
            result = matcher.find_and_replace(line, self.store)
            line = result.line
            replaced += result.replaced
            unmapped += result.unmapped

        self.assertEqual(
            f"('{NEW_ID_A}','<a href=\"/#Account/view/{NEW_ID_B}\">x</a>',"
            f"'?entryPoint=download&amp;id={OLD_ID_C}')\n",
            line,
        )
        self.assertEqual(2, replaced)
        self.assertEqual(1, unmapped)
