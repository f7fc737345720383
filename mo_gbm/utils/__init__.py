"""
Utilities Package

データ生成・インターフェース確認・可視化のユーティリティ
"""
