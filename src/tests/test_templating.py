from prompt_chain import templating


def test_render_substitutes_variables_and_step_outputs() -> None:
    rendered = templating.render(
        "Explain {{topic}} then compare with {{ step:0 }} and {{Step2.output}}",
        {"topic": "entropy"},
        ["first", "second"],
    )

    assert rendered == "Explain entropy then compare with first and second"


def test_render_leaves_unresolved_variables_literal() -> None:
    rendered = templating.render("Hello {{ name }} from {{place}}", {"place": "Oslo"}, [])

    assert rendered == "Hello {{ name }} from Oslo"


def test_render_forward_and_dangling_step_refs_are_empty() -> None:
    rendered = templating.render("[{{step:1}}][{{step:7}}][{{Step0.output}}]", {}, ["only"])

    assert rendered == "[][][]"


def test_render_is_pure() -> None:
    variables = {"topic": "entropy"}
    outputs = ["a"]
    template = "{{topic}} / {{step:0}} / {{missing}}"

    first = templating.render(template, variables, outputs)
    second = templating.render(template, variables, outputs)

    assert first == second
    assert variables == {"topic": "entropy"}
    assert outputs == ["a"]


def test_render_does_not_reexpand_substituted_values() -> None:
    rendered = templating.render("{{a}}", {"a": "{{b}}", "b": "nope"}, [])

    assert rendered == "{{b}}"


def test_step_reference_forms() -> None:
    assert templating.step_reference("step:0") == 0
    assert templating.step_reference("STEP:3") == 3
    assert templating.step_reference("Step1.output") == 0
    assert templating.step_reference("topic") is None


def test_extract_placeholders_unique_in_order() -> None:
    placeholders = templating.extract_placeholders("{{b}} {{ a }} {{b}} {{step:0}}")

    assert placeholders == ["b", "a", "step:0"]


def test_check_template_reports_missing_and_forward_refs() -> None:
    check = templating.check_template("{{topic}} {{tone}} {{step:0}} {{step:1}} {{Step3.output}}", {"topic": "x"}, 1)

    assert not check.valid
    assert check.missing_variables == ["tone"]
    assert check.invalid_references == ["step:1", "Step3.output"]


def test_check_template_valid() -> None:
    check = templating.check_template("{{topic}} {{step:0}}", {"topic": "x"}, 2)

    assert check.valid
