from __future__ import annotations

import logging
import tkinter as tk
from tkinter import messagebox, ttk
from typing import Callable, Optional

from api import Book, BookstoreClient, SearchType
from config import Config
from controller import BookstoreController


# --------------------------------------------------------------------------- #
# Utility helpers
# --------------------------------------------------------------------------- #
def truncate(value: str, length: int) -> str:
    if len(value) <= length:
        return value
    return value[: length - 1] + "…"


# --------------------------------------------------------------------------- #
# Catalog panel
# --------------------------------------------------------------------------- #
class CatalogFrame(ttk.Frame):
    def __init__(self, master: tk.Misc, controller: "MainApplication"):
        super().__init__(master, padding=12)
        self.controller = controller
        self._build_ui()

    @property
    def bookstore(self) -> BookstoreController:
        return self.controller.bookstore

    def _build_ui(self) -> None:
        top = ttk.Frame(self)
        top.grid(row=0, column=0, sticky="ew")
        top.columnconfigure(1, weight=1)

        self.search_type_var = tk.StringVar(value=SearchType.ALL.value)
        ttk.Combobox(
            top,
            values=[member.value for member in SearchType],
            textvariable=self.search_type_var,
            state="readonly",
            width=6,
        ).grid(row=0, column=0, sticky="w")

        self.keyword_var = tk.StringVar()
        entry = ttk.Entry(top, textvariable=self.keyword_var)
        entry.grid(row=0, column=1, sticky="ew", padx=(4, 0))
        entry.bind("<Return>", lambda _event: self._submit_search())
        self.search_type_var.trace_add("write", self._sync_search_draft)
        self.keyword_var.trace_add("write", self._sync_search_draft)

        ttk.Button(top, text="검색", command=self._submit_search, width=8).grid(
            row=0, column=2, padx=(8, 0)
        )

        columns = ("title", "author", "quantity")
        self.tree = ttk.Treeview(self, columns=columns, show="headings", selectmode="browse")
        self.tree.heading("title", text="제목")
        self.tree.heading("author", text="저자")
        self.tree.heading("quantity", text="수량")
        self.tree.column("title", width=320, anchor="w")
        self.tree.column("author", width=200, anchor="w")
        self.tree.column("quantity", width=80, anchor="center")
        self.tree.grid(row=1, column=0, sticky="nsew", pady=(8, 0))
        self.tree.bind("<Double-1>", lambda _event: self._edit_selected())
        self.rowconfigure(1, weight=1)
        self.columnconfigure(0, weight=1)

        self.empty_label = ttk.Label(self, foreground="#888888")
        self.empty_label.grid(row=2, column=0, pady=(6, 0))

        actions = ttk.Frame(self)
        actions.grid(row=3, column=0, sticky="ew", pady=(8, 0))
        ttk.Button(actions, text="−", width=3, command=self._decrease_selected).grid(row=0, column=0)
        ttk.Button(actions, text="+", width=3, command=self._increase_selected).grid(
            row=0, column=1, padx=(4, 12)
        )
        ttk.Button(actions, text="수정", command=self._edit_selected).grid(row=0, column=2, padx=(0, 6))
        ttk.Button(actions, text="삭제", command=self._delete_selected).grid(row=0, column=3)
        ttk.Button(actions, text="새 책 추가", command=self.controller.open_add_dialog).grid(
            row=0, column=4, padx=(24, 0)
        )

        nav = ttk.Frame(self)
        nav.grid(row=4, column=0, pady=(8, 0))
        self.prev_button = ttk.Button(nav, text="이전", command=self._previous_page)
        self.prev_button.grid(row=0, column=0, padx=(0, 6))
        self.page_label = ttk.Label(nav)
        self.page_label.grid(row=0, column=1)
        self.next_button = ttk.Button(nav, text="다음", command=self._next_page)
        self.next_button.grid(row=0, column=2, padx=(6, 0))

    # ------------------------------------------------------------------
    def render(self) -> None:
        self.tree.delete(*self.tree.get_children())
        for book in self.bookstore.books:
            self.tree.insert(
                "",
                "end",
                iid=str(book.id),
                values=(truncate(book.title, 60), book.author, book.quantity),
            )
        self.empty_label.configure(text=self.bookstore.empty_message or "")
        self.page_label.configure(text=self.bookstore.page_label)
        self.prev_button.configure(state="normal" if self.bookstore.can_go_previous else "disabled")
        self.next_button.configure(state="normal" if self.bookstore.can_go_next else "disabled")
        # The draft only diverges from the inputs when the controller resets it.
        draft = self.bookstore.draft
        if self.search_type_var.get() != draft.search_type.value:
            self.search_type_var.set(draft.search_type.value)
        if self.keyword_var.get() != draft.keyword:
            self.keyword_var.set(draft.keyword)

    def _selected_book(self) -> Optional[Book]:
        selection = self.tree.selection()
        if not selection:
            return None
        book_id = int(selection[0])
        return next((book for book in self.bookstore.books if book.id == book_id), None)

    def _with_selected(self, action: Callable[[Book], object]) -> None:
        book = self._selected_book()
        if book is None:
            return
        action(book)
        self.render()

    def _sync_search_draft(self, *_args: object) -> None:
        self.bookstore.set_search_input(self.keyword_var.get(), SearchType.parse(self.search_type_var.get()))

    def _submit_search(self) -> None:
        self._sync_search_draft()
        self.bookstore.submit_search()
        self.render()

    def _previous_page(self) -> None:
        self.bookstore.previous_page()
        self.render()

    def _next_page(self) -> None:
        self.bookstore.next_page()
        self.render()

    def _increase_selected(self) -> None:
        self._with_selected(self.bookstore.increase_quantity)

    def _decrease_selected(self) -> None:
        self._with_selected(self.bookstore.decrease_quantity)

    def _delete_selected(self) -> None:
        self._with_selected(lambda book: self.bookstore.delete_book(book.id))

    def _edit_selected(self) -> None:
        book = self._selected_book()
        if book is not None:
            self.controller.open_edit_dialog(book)


# --------------------------------------------------------------------------- #
class BookDialog(tk.Toplevel):
    """Add/edit form. ``on_save`` returns True when the dialog may close."""

    def __init__(
        self,
        controller: "MainApplication",
        title: str,
        *,
        on_save: Callable[[dict], bool],
        on_cancel: Callable[[], None],
        book: Optional[Book] = None,
    ):
        super().__init__(controller)
        self.title(title)
        self.resizable(False, False)
        self.grab_set()
        self.on_save = on_save
        self.on_cancel = on_cancel

        self.title_var = tk.StringVar(value=book.title if book else "")
        self.author_var = tk.StringVar(value=book.author if book else "")
        self.detail_var = tk.StringVar(value=(book.detail or "") if book else "")
        self.quantity_var = tk.IntVar(value=book.quantity if book else 0)

        fields = [("제목", self.title_var), ("저자", self.author_var), ("설명", self.detail_var)]
        for index, (label, variable) in enumerate(fields):
            ttk.Label(self, text=f"{label}:").grid(row=index, column=0, sticky="w", padx=12, pady=4)
            ttk.Entry(self, textvariable=variable, width=40).grid(
                row=index, column=1, sticky="ew", padx=(0, 12), pady=4
            )
        self.with_quantity = book is not None
        if self.with_quantity:
            ttk.Label(self, text="수량:").grid(row=3, column=0, sticky="w", padx=12, pady=4)
            tk.Spinbox(self, from_=0, to=100000, textvariable=self.quantity_var, width=8).grid(
                row=3, column=1, sticky="w", padx=(0, 12), pady=4
            )

        button_frame = ttk.Frame(self)
        button_frame.grid(row=4, column=0, columnspan=2, pady=(12, 12))
        ttk.Button(button_frame, text="취소", command=self._cancel).grid(row=0, column=0, padx=4)
        ttk.Button(button_frame, text="저장", command=self._save).grid(row=0, column=1, padx=4)
        self.protocol("WM_DELETE_WINDOW", self._cancel)

    def _values(self) -> dict:
        values = {
            "title": self.title_var.get(),
            "author": self.author_var.get(),
            "detail": self.detail_var.get(),
        }
        if self.with_quantity:
            try:
                values["quantity"] = max(int(self.quantity_var.get()), 0)
            except (tk.TclError, ValueError):
                values["quantity"] = 0
        return values

    def _save(self) -> None:
        if self.on_save(self._values()):
            self.destroy()

    def _cancel(self) -> None:
        self.on_cancel()
        self.destroy()


# --------------------------------------------------------------------------- #
# Main application
# --------------------------------------------------------------------------- #
class MainApplication(tk.Tk):
    def __init__(self, client: Optional[BookstoreClient] = None):
        super().__init__()
        self.title("RGT 서점")
        self.geometry("820x620")
        self.minsize(640, 480)

        client = client or BookstoreClient(Config.API_URL, timeout=Config.REQUEST_TIMEOUT)
        self.bookstore = BookstoreController(
            client,
            alert=lambda message: messagebox.showerror("오류", message, parent=self),
            confirm=lambda message: messagebox.askyesno("삭제", message, parent=self),
        )

        self.catalog_frame = CatalogFrame(self, self)
        self.catalog_frame.pack(fill="both", expand=True)
        self.refresh()

    # ------------------------------------------------------------------
    def refresh(self) -> None:
        self.bookstore.load()
        self.catalog_frame.render()

    def open_add_dialog(self) -> None:
        self.bookstore.open_add_modal()

        def save(values: dict) -> bool:
            self.bookstore.change_new_book(**values)
            self.bookstore.add_book()
            self.catalog_frame.render()
            return not self.bookstore.show_add_modal

        BookDialog(self, "새 책 추가", on_save=save, on_cancel=self.bookstore.close_add_modal)

    def open_edit_dialog(self, book: Book) -> None:
        self.bookstore.open_edit_modal(book)

        def save(values: dict) -> bool:
            self.bookstore.change_edit_book(**values)
            self.bookstore.save_edit()
            self.catalog_frame.render()
            return not self.bookstore.show_edit_modal

        BookDialog(
            self,
            f"'{truncate(book.title, 40)}' 수정",
            on_save=save,
            on_cancel=self.bookstore.close_edit_modal,
            book=book,
        )


if __name__ == "__main__":
    logging.basicConfig(level=Config.LOG_LEVEL, format=Config.LOG_FORMAT)
    app = MainApplication()
    app.mainloop()
