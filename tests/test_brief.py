from siteforge.brief import (
    DEFAULT_ACCENT,
    clean_text,
    expand_about,
    resolve_brief,
    split_palette,
)
from siteforge.models import UserBrief


def test_empty_brief_gets_every_default():
    b = resolve_brief({})
    assert b.name == "Portfolio Owner"
    assert b.title == "Web Developer"
    assert b.tagline == "Creating beautiful web experiences"
    assert b.email == "contact@example.com"
    assert b.skills == ("HTML", "CSS", "JavaScript")
    assert [p.title for p in b.projects] == ["Project 1", "Project 2", "Project 3"]
    assert b.projects[1].desc == "Second project description"
    assert b.palette == (DEFAULT_ACCENT, DEFAULT_ACCENT, DEFAULT_ACCENT)


def test_palette_splitting_keeps_function_colors_and_drops_junk():
    assert split_palette("#112233, rgb(1, 2, 3), not a color!, teal") == ["#112233", "rgb(1, 2, 3)", "teal"]
    b = resolve_brief({"accent": "#ff0000,#00ff00"})
    assert b.palette == ("#ff0000", "#00ff00", "#00ff00")


def test_user_text_cannot_form_tokens():
    assert "{{" not in clean_text("{{NAME}} and {{{x}}}")
    assert "}}" not in clean_text("{{NAME}} and {{{x}}}")


def test_skills_from_comma_string_and_partial_projects():
    b = resolve_brief(UserBrief(skills="Go, Rust , ", projects=[{"title": "X"}, {}]))
    assert b.skills == ("Go", "Rust")
    assert b.projects[0].title == "X" and b.projects[0].supplied
    assert b.projects[0].desc == "Project 1 description"
    assert b.projects[1].title == "Project 2" and not b.projects[1].supplied


def test_scalar_tokens_always_cover_three_projects():
    b = resolve_brief({"projects": [{"title": "Only", "desc": "One"}]})
    tokens = b.scalar_tokens(2030)
    assert tokens["YEAR"] == "2030"
    assert tokens["PROJECT_1_TITLE"] == "Only"
    assert tokens["PROJECT_3_TITLE"] == "Project 3"
    assert tokens["PROJECT_3_DESC"] == "Third project description"


def test_expand_about_builds_three_paragraphs():
    short = expand_about(resolve_brief({"about": "Hi", "title": "Engineer", "skills": ["Go"]}))
    assert len(short) == 3
    assert "Engineer" in short[0] and "Go" in short[0]
    long_text = "x" * 150
    assert expand_about(resolve_brief({"about": long_text}))[0] == long_text


def test_prompt_mode():
    assert UserBrief(prompt="  a portfolio for a baker ").is_prompt_mode
    assert not UserBrief(name="Ada").is_prompt_mode
    assert resolve_brief({"prompt": "a baker"}).prompt == "a baker"
