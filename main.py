"""
Pomo Tasker - デスクトップ起動用
"""
import flet as ft

from pomo_tasker.main import main

if __name__ == "__main__":
    ft.app(target=main)
