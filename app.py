import gradio as gr

from json_plan_transformer.config import configure_logging
from json_plan_transformer.handlers import (
    export_data_handler,
    generate_plan_handler,
    handle_root_change,
    load_and_discover,
    preview_handler,
    settings,
)

configure_logging(settings.log_level)

# --- UI Definition ---
with gr.Blocks(title="JSON Plan Transformer") as demo:
    gr.Markdown("# JSON Plan Transformer")
    gr.Markdown("Upload a JSON document, describe the table you want, and export the result as CSV or JSON.")

    # State
    json_data_state = gr.State()

    with gr.Row():
        # Left Panel: Input & Plan
        with gr.Column(scale=1):
            gr.Markdown("### 1. Import")
            file_input = gr.File(label="Upload JSON File", file_types=[".json"])
            goal_input = gr.Textbox(
                label="Goal",
                placeholder="e.g. total price per category",
            )
            status_msg = gr.Textbox(label="Status", interactive=False)

            gr.Markdown("### 2. Record Path")
            record_path_selector = gr.Dropdown(
                label="Record Path (array of records)",
                choices=["/"],
                value="/",
                allow_custom_value=True,
                interactive=True,
            )
            document_count = gr.Textbox(label="Document Count", interactive=False)

            gr.Markdown("### 3. Plan")
            gr.Markdown("Generate a plan from the goal, then edit it if needed. Leave empty to use the goal directly.")
            generate_btn = gr.Button("Generate Plan")
            plan_editor = gr.Code(label="Transform Plan", language="json", interactive=True)

        # Right Panel: Preview & Export
        with gr.Column(scale=1):
            gr.Markdown("### 4. Preview")
            load_preview_btn = gr.Button("Load Preview")
            preview_rows = gr.JSON(label=f"Preview (first {settings.preview_rows} rows)")
            output_schema = gr.JSON(label="Output Schema")

            gr.Markdown("### 5. Export")
            output_format = gr.Radio(choices=["CSV", "JSON"], value="CSV", label="Output Format")
            output_filename = gr.Textbox(label="Output Filename (optional)", placeholder="output")
            export_btn = gr.Button("Export Data", variant="primary")
            download_output = gr.File(label="Download Result")

    file_input.upload(
        fn=load_and_discover,
        inputs=[file_input, goal_input],
        outputs=[json_data_state, record_path_selector, status_msg, document_count, plan_editor, preview_rows],
    )

    record_path_selector.change(
        fn=handle_root_change,
        inputs=[json_data_state, record_path_selector],
        outputs=[document_count, preview_rows],
    )

    generate_btn.click(
        fn=generate_plan_handler,
        inputs=[json_data_state, goal_input, record_path_selector],
        outputs=[plan_editor, status_msg],
    )

    load_preview_btn.click(
        fn=preview_handler,
        inputs=[json_data_state, goal_input, plan_editor, record_path_selector],
        outputs=[preview_rows, output_schema, status_msg],
    )

    export_btn.click(
        fn=export_data_handler,
        inputs=[json_data_state, goal_input, plan_editor, output_format, output_filename, record_path_selector],
        outputs=[download_output, status_msg],
    )

if __name__ == "__main__":
    demo.launch()
