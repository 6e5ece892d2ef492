#!/usr/bin/env python3
import json

import cv2
import streamlit as st

from sheet_omr.errors import InvalidInput
from sheet_omr.scan_core import scan_filled_sheet
from sheet_omr.scoring_defaults import apply_overrides
from sheet_omr.tools.ocr import TesseractReader
from sheet_omr.visualize_core import render_result_overlay

st.set_page_config(page_title="sheet-omr", layout="wide")
st.title("sheet-omr")

# ---------- UI ----------
upload = st.file_uploader("Sheet photo or scan", type=["png", "jpg", "jpeg"])
questions = st.number_input("Number of questions (0 = detect)", value=0, min_value=0, max_value=200)
workers = st.number_input("Search threads", value=1, min_value=1, max_value=16)
show_overlay = st.checkbox("Show detected grid", value=True)

if st.button("Scan"):
    if upload is None:
        st.error("Upload an image first.")
    else:
        data = upload.getvalue()
        settings = apply_overrides(workers=int(workers))
        total = int(questions) or None
        try:
            with st.spinner("Scanning..."):
                res = scan_filled_sheet(data, total_questions=total, reader=TesseractReader(), settings=settings)
        except InvalidInput as e:
            st.error(f"Invalid image: {e}")
        else:
            col1, col2 = st.columns(2)
            with col1:
                st.subheader("Result")
                st.metric("Sheet number", res.unique_number or "not found")
                if res.needs_total_questions:
                    st.warning("Question count not detected. Enter it above and scan again.")
                st.code(" ".join(f"{i + 1}:{a}" for i, a in enumerate(res.answers)) or "(no answers)")
                payload = res.to_dict()
                st.download_button("Download JSON", json.dumps(payload, indent=2), file_name="scan.json")
                with st.expander("Debug"):
                    st.json(payload["debug"])
            if show_overlay and res.total_questions > 0:
                with col2:
                    st.subheader("Detected grid")
                    overlay = render_result_overlay(data, res.debug.get("answers"), res.answers, settings)
                    st.image(cv2.cvtColor(overlay, cv2.COLOR_BGR2RGB))
